from shared.helper.HelperConfig import HelperConfig
from shared.clients.ClientInterface import ClientInterface


class ClientManager:
    """
    Base manager that instantiates the client engine named in the configuration.

    The engine is read from "<CLIENT_TYPE>_ENGINE" and resolved to the class
    shared.clients.<client_type>.<engine>.<ClassPrefix>Client<Engine>.
    """

    client_type: str = ""
    class_prefix: str = ""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the engine name from ENV configuration.

        Returns:
            str: The capitalised engine name, e.g. "Qdrant".

        Raises:
            ValueError: If no engine is specified in the configuration.
        """
        engine = self.helper_config.get_string_val(f"{self.client_type.upper()}_ENGINE")
        if not engine:
            raise ValueError(f"No {self.class_prefix} engine specified in configuration.")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ClientInterface:
        """
        Imports and instantiates the client class for the configured engine.

        Raises:
            ValueError: If the engine is unknown or its class cannot be loaded.
        """
        engine = self._get_engine_from_env()
        class_name = f"{self.class_prefix}Client{engine}"
        try:
            module = __import__(
                f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.class_prefix} engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self.class_prefix, engine)
        return client

    def get_client(self) -> ClientInterface:
        """
        Returns the instantiated client.
        """
        return self.client
