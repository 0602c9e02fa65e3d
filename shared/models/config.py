from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required by a client.

    Attributes:
        env_key (str): The raw key of the environment variable, without the client prefix (e.g. "BASE_URL").
        val_type (str): The expected type of the value. Supported types are "string", "number", "bool" and "list".
        default (str | int | float | bool | list | None): Fallback value. If None, the variable is required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None


class PipelineSettings(BaseModel):
    """Tunables of the ingestion, retrieval and answering pipeline.

    Built from the environment via from_config() for the runners; tests
    construct it directly with the values they need.
    """

    # chunking
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # parallel embedding
    embed_batch_size: int = 20
    embed_concurrency: int = 3
    embed_batch_timeout: float = 30.0

    # caches (seconds)
    embed_cache_ttl: int = 3600
    retrieval_cache_ttl: int = 1800

    # retrieval
    default_top_k: int = 5
    default_min_score: float = 0.3
    max_query_length: int = 1000

    # cascade delete
    delete_max_attempts: int = 3
    delete_backoff_base: float = 1.0

    # answering
    answer_first_chunk_timeout: float = 5.0
    answer_total_timeout: float = 30.0
    answer_context_tokens: int = 2000
    answer_prompt_tokens: int = 3000

    @classmethod
    def from_config(cls, helper_config: HelperConfig) -> "PipelineSettings":
        """Read every tunable from the environment, falling back to the defaults above.

        Args:
            helper_config (HelperConfig): The configuration helper.

        Returns:
            PipelineSettings: The resolved settings.

        Raises:
            ValueError: If chunk_overlap is not smaller than chunk_size.
        """
        defaults = cls()
        values = {}
        for field_name in cls.model_fields:
            values[field_name] = helper_config.get_number_val(field_name.upper(), default=getattr(defaults, field_name))
        settings = cls(**values)
        if settings.chunk_overlap >= settings.chunk_size:
            raise ValueError(
                f"CHUNK_OVERLAP ({settings.chunk_overlap}) must be smaller than CHUNK_SIZE ({settings.chunk_size})."
            )
        return settings
