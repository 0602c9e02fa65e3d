from abc import abstractmethod
from typing import AsyncIterator
import json

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.answer import ChatMessage, GenerationOptions


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_models(self) -> str:
        """Returns the endpoint path for model listing requests (e.g. "/api/tags")."""
        pass

    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(self, messages: list[ChatMessage], options: GenerationOptions, stream: bool) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[ChatMessage]): Ordered conversation (system, history, user).
            options (GenerationOptions): Sampling options and token limit.
            stream (bool): Whether the backend should stream the reply.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw (non-streamed) chat response."""
        pass

    @abstractmethod
    def extract_stream_fragment(self, line: str) -> str | None:
        """Extract the text fragment carried by one line of a streamed reply.

        Returns:
            str | None: The fragment text ("" for keep-alive lines), or None once the stream signals completion.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_fetch_models(self) -> httpx.Response:
        """Fetch the list of available models from the backend."""
        return await self.do_request(method="GET", endpoint=self._get_endpoint_models())

    async def do_chat(self, messages: list[ChatMessage], options: GenerationOptions | None = None) -> str:
        """Send a chat/completion request and return the full assistant reply text.

        Raises:
            ClientRequestError: If the backend answers with a non-2xx status.
            ValueError: If the response does not contain a valid reply.
        """
        body = self.get_chat_payload(messages, options or GenerationOptions(), stream=False)
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_chat(),
            json=body,
            raise_on_error=True,
        )
        return self.extract_chat_response(response.json())

    async def do_stream_chat(self, messages: list[ChatMessage], options: GenerationOptions | None = None) -> AsyncIterator[str]:
        """Stream the assistant reply as a sequence of non-empty text fragments.

        Raises:
            ClientRequestError: If the backend answers with a non-2xx status.
            ValueError: If a streamed line is not valid JSON.
        """
        body = self.get_chat_payload(messages, options or GenerationOptions(), stream=True)
        async for line in self.do_stream_lines(method="POST", json=body, endpoint=self._get_endpoint_chat()):
            try:
                fragment = self.extract_stream_fragment(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"Malformed stream line from '{self.get_engine_name()}': {line[:100]}") from e
            if fragment is None:
                return
            if fragment:
                yield fragment
