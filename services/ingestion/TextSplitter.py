"""Recursive character text splitter.

Splits text on the coarsest separator it contains, merges the pieces into
windows of at most chunk_size characters with chunk_overlap characters of
shared context, and re-splits any piece that is still too long with the next
finer separator. The recursion is unrolled into a work deque so very large
inputs never grow the call stack.
"""

from collections import deque

# paragraph, line, sentence (latin and CJK), word, character
DEFAULT_SEPARATORS = ["\n\n", "\n", ". ", "。", " ", ""]


class TextSplitter:
    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200, separators: list[str] | None = None):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}.")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for chunk_size {chunk_size}.")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators) if separators is not None else list(DEFAULT_SEPARATORS)

    ##########################################
    ################ PUBLIC ##################
    ##########################################

    def split_text(self, text: str) -> list[str]:
        """Split text into ordered, overlapping chunks.

        Args:
            text (str): The plain text to split.

        Returns:
            list[str]: Non-empty chunks in document order. Each chunk is at most
                chunk_size characters unless no separator could break it further.
        """
        if not text or not text.strip():
            return []

        chunks: list[str] = []
        # items are ("text", text, separators) to expand or ("chunk", text) to emit
        work: deque[tuple] = deque([("text", text, self.separators)])
        while work:
            item = work.popleft()
            if item[0] == "chunk":
                chunks.append(item[1])
                continue
            expanded = self._expand(item[1], item[2])
            work.extendleft(reversed(expanded))
        return chunks

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _pick_separator(self, text: str, separators: list[str]) -> tuple[str, list[str]]:
        """Return the first separator present in text and the finer ones after it."""
        for i, sep in enumerate(separators):
            if sep == "":
                return sep, []
            if sep in text:
                return sep, separators[i + 1:]
        return "", []

    def _split_on(self, text: str, separator: str) -> list[str]:
        # the separator stays attached to the end of the piece it terminates
        if separator == "":
            return list(text)
        parts = text.split(separator)
        pieces = [part + separator for part in parts[:-1]] + [parts[-1]]
        return [p for p in pieces if p]

    def _expand(self, text: str, separators: list[str]) -> list[tuple]:
        separator, finer = self._pick_separator(text, separators)
        expanded: list[tuple] = []
        pending: list[str] = []
        for piece in self._split_on(text, separator):
            if len(piece) < self.chunk_size:
                pending.append(piece)
                continue
            if pending:
                expanded.extend(("chunk", c) for c in self._merge(pending))
                pending = []
            if finer:
                expanded.append(("text", piece, finer))
            else:
                stripped = piece.strip()
                if stripped:
                    expanded.append(("chunk", stripped))
        if pending:
            expanded.extend(("chunk", c) for c in self._merge(pending))
        return expanded

    def _merge(self, pieces: list[str]) -> list[str]:
        """Greedily pack pieces into windows, carrying a tail of up to chunk_overlap characters forward."""
        merged: list[str] = []
        window: deque[str] = deque()
        total = 0
        for piece in pieces:
            size = len(piece)
            if total + size > self.chunk_size and window:
                self._emit(window, merged)
                while window and (total > self.chunk_overlap or total + size > self.chunk_size):
                    total -= len(window.popleft())
            window.append(piece)
            total += size
        self._emit(window, merged)
        return merged

    @staticmethod
    def _emit(window: deque[str], merged: list[str]) -> None:
        joined = "".join(window).strip()
        if joined:
            merged.append(joined)
