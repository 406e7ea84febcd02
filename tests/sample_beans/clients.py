import abc

from wirebind import inject, named, qualified


class Client(abc.ABC):
    @abc.abstractmethod
    def call(self) -> str: ...


class HttpClient(Client):
    def call(self) -> str:
        return "http"


@qualified(named("grpc"))
class GrpcClient(Client):
    def call(self) -> str:
        return "grpc"

    class Options:
        retries = 3


class ClientUser:
    @inject
    def __init__(self, client: Client) -> None:
        self.client = client
