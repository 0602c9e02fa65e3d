from shared.clients.ClientManager import ClientManager
from shared.clients.storage.StorageClientInterface import StorageClientInterface


class StorageClientManager(ClientManager):
    """
    Manager class to handle the object storage client based on STORAGE_ENGINE.
    """

    client_type = "storage"
    class_prefix = "Storage"

    def get_client(self) -> StorageClientInterface:
        return self.client
