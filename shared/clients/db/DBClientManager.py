from shared.clients.ClientManager import ClientManager
from shared.clients.db.DBClientInterface import DBClientInterface


class DBClientManager(ClientManager):
    """
    Manager class to handle the relational store client based on DB_ENGINE.
    """

    client_type = "db"
    class_prefix = "DB"

    def get_client(self) -> DBClientInterface:
        return self.client
