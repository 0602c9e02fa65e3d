from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class StorageClientInterface(ClientInterface):
    """Object storage contract. The pipeline only ever removes blobs."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "storage"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        """
        Returns the endpoint path for object deletion (e.g. "/storage/v1/object/documents").
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_delete_payload(self, path: str) -> dict:
        """Builds the backend-specific request body removing the object at path."""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_delete_file(self, path: str) -> None:
        """Remove the object stored at path. Removing an absent object is not an error.

        Raises:
            ClientRequestError: If the backend rejects the request.
        """
        await self.do_request(
            method="DELETE",
            json=self.get_delete_payload(path),
            endpoint=self._get_endpoint_delete(),
            raise_on_error=True,
        )
