"""
Tests for the shared models, configuration helpers and cache key derivation.
"""

import pytest

from shared.helper.HelperCacheKeys import hash_query, normalize_query
from shared.models.config import PipelineSettings
from shared.models.document import CHUNKABLE_STATUSES, DocumentStatus, EmbeddingReport, InvalidStatusTransition, ensure_transition
from shared.models.errors import RetrievalError, RetrievalErrorCode


class TestDocumentStatus:
    """Lifecycle transitions."""

    @pytest.mark.parametrize(
        "source,target",
        [
            (DocumentStatus.PENDING, DocumentStatus.PARSING),
            (DocumentStatus.PARSING, DocumentStatus.EMBEDDING),
            (DocumentStatus.EMBEDDING, DocumentStatus.READY),
            (DocumentStatus.PENDING, DocumentStatus.EMBEDDING),
        ],
    )
    def test_forward_transitions_are_allowed(self, source, target):
        assert source.can_transition_to(target)

    @pytest.mark.parametrize("source", list(DocumentStatus))
    def test_failed_is_reachable_from_everywhere(self, source):
        assert source.can_transition_to(DocumentStatus.FAILED)

    def test_backward_transitions_are_rejected(self):
        assert not DocumentStatus.READY.can_transition_to(DocumentStatus.EMBEDDING)
        assert not DocumentStatus.EMBEDDING.can_transition_to(DocumentStatus.PENDING)
        assert not DocumentStatus.FAILED.can_transition_to(DocumentStatus.READY)

    def test_failed_can_only_go_back_to_embedding(self):
        assert DocumentStatus.FAILED.can_transition_to(DocumentStatus.EMBEDDING)
        assert not DocumentStatus.FAILED.can_transition_to(DocumentStatus.PENDING)

    def test_ensure_transition_rejects_skipping_to_ready(self):
        with pytest.raises(InvalidStatusTransition) as exc_info:
            ensure_transition(DocumentStatus.PENDING, DocumentStatus.READY)

        assert exc_info.value.current == DocumentStatus.PENDING
        assert exc_info.value.target == DocumentStatus.READY

    def test_only_early_states_are_chunkable(self):
        assert CHUNKABLE_STATUSES == {DocumentStatus.PENDING, DocumentStatus.PARSING}


class TestEmbeddingReport:
    def test_failed_label_is_sorted(self):
        report = EmbeddingReport(document_id="doc-1", total_batches=5, failed_batches=[4, 2])
        assert report.failed_label == "2,4"


class TestErrors:
    def test_error_string_carries_code(self):
        error = RetrievalError(RetrievalErrorCode.NO_RELEVANT_CONTENT, "nothing found")
        assert str(error) == "[NO_RELEVANT_CONTENT] nothing found"
        assert error.is_no_content


class TestPipelineSettings:
    """Reading tunables from the environment."""

    def test_defaults_without_environment(self, helper_config):
        settings = PipelineSettings.from_config(helper_config)
        assert settings.chunk_size == 1000
        assert settings.chunk_overlap == 200
        assert settings.embed_batch_size == 20
        assert settings.embed_concurrency == 3

    def test_environment_overrides(self, helper_config, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("CHUNK_OVERLAP", "50")
        monkeypatch.setenv("ANSWER_TOTAL_TIMEOUT", "12.5")
        settings = PipelineSettings.from_config(helper_config)
        assert settings.chunk_size == 500
        assert settings.chunk_overlap == 50
        assert settings.answer_total_timeout == 12.5

    def test_overlap_must_be_smaller_than_size(self, helper_config, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "100")
        monkeypatch.setenv("CHUNK_OVERLAP", "100")
        with pytest.raises(ValueError):
            PipelineSettings.from_config(helper_config)


class TestHelperConfig:
    def test_missing_required_value_raises(self, helper_config, monkeypatch):
        monkeypatch.delenv("EMBED_MODEL", raising=False)
        with pytest.raises(ValueError):
            helper_config.get_string_val("EMBED_MODEL")

    def test_blank_value_counts_as_unset(self, helper_config, monkeypatch):
        monkeypatch.setenv("CACHE_REDIS_URL", "   ")
        assert helper_config.get_string_val("CACHE_REDIS_URL", default="") == ""

    def test_list_values(self, helper_config, monkeypatch):
        monkeypatch.setenv("SOME_LIST", "[1, 2,3]")
        assert helper_config.get_list_val("SOME_LIST", element_type=int) == [1, 2, 3]

    def test_invalid_number_raises(self, helper_config, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "big")
        with pytest.raises(ValueError):
            helper_config.get_number_val("CHUNK_SIZE")


class TestCacheKeys:
    def test_normalization(self):
        assert normalize_query("  What   is\tAI? ") == "what is ai?"

    def test_equivalent_queries_share_a_hash(self):
        assert hash_query("What is AI?") == hash_query(" what is ai? ")
        assert hash_query("What is AI?") != hash_query("What is ML?")
