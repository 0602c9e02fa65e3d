from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager(ClientManager):
    """
    Manager class to handle the Embed client based on EMBED_ENGINE.
    """

    client_type = "embed"
    class_prefix = "Embed"

    def get_client(self) -> EmbedClientInterface:
        return self.client
