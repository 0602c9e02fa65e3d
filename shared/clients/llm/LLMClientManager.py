from shared.clients.ClientManager import ClientManager
from shared.clients.llm.LLMClientInterface import LLMClientInterface


class LLMClientManager(ClientManager):
    """
    Manager class to handle the LLM generation client based on LLM_ENGINE.
    """

    client_type = "llm"
    class_prefix = "LLM"

    def get_client(self) -> LLMClientInterface:
        return self.client
