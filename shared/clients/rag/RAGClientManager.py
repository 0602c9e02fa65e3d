from shared.clients.ClientManager import ClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface


class RAGClientManager(ClientManager):
    """
    Manager class to handle the vector index client based on RAG_ENGINE.
    """

    client_type = "rag"
    class_prefix = "RAG"

    def get_client(self) -> RAGClientInterface:
        return self.client
