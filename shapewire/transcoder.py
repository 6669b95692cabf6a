import logging
from functools import lru_cache
from typing import Optional, Union

from botocore.model import OperationModel, ServiceModel

from shapewire.api import WireFrame
from shapewire.protocol.marshaller import RequestMarshaller, create_marshaller
from shapewire.protocol.unmarshaller import ResponseUnmarshaller, create_unmarshaller
from shapewire.spec import get_protocol, load_service

LOG = logging.getLogger(__name__)


class ServiceTranscoder:
    """
    Pairs the marshaller and the unmarshaller for the protocol of a service. Operations can be addressed by name.
    A transcoder does not hold any per-call state and can be shared between threads.
    """

    service: ServiceModel
    marshaller: RequestMarshaller
    unmarshaller: ResponseUnmarshaller

    def __init__(self, service: Union[str, ServiceModel]):
        if isinstance(service, str):
            service = load_service(service)
        self.service = service
        self.marshaller = create_marshaller(service)
        self.unmarshaller = create_unmarshaller(service)

    def operation(self, operation: Union[str, OperationModel]) -> OperationModel:
        if isinstance(operation, OperationModel):
            return operation
        return self.service.operation_model(operation)

    def marshall(self, operation: Union[str, OperationModel], request: Optional[dict]) -> WireFrame:
        return self.marshaller.marshall(request, self.operation(operation))

    def unmarshall(
        self,
        operation: Union[str, OperationModel],
        response: WireFrame,
        document_wrapper_depth: Optional[int] = None,
    ) -> dict:
        return self.unmarshaller.unmarshall(
            response, self.operation(operation), document_wrapper_depth
        )

    def __repr__(self):
        return f"ServiceTranscoder({self.service.service_name}, {get_protocol(self.service)})"


@lru_cache()
def get_transcoder(service_name: str) -> ServiceTranscoder:
    """
    Returns the (cached) transcoder for the service with the given name.
    """
    LOG.debug("creating transcoder for %s", service_name)
    return ServiceTranscoder(service_name)
