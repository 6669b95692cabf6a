import json
import logging
import os
from collections import defaultdict
from functools import cached_property
from typing import Dict, Generator, List, Optional, Tuple

import jsonpatch
from botocore.loaders import Loader, instance_cache
from botocore.model import OperationModel, ServiceModel

from shapewire import config
from shapewire.constants import SUPPORTED_PROTOCOLS
from shapewire.protocol.errors import UnknownServiceProtocolError

LOG = logging.getLogger(__name__)

ServiceName = str

# services whose message shapes are covered by the transcoders
SUPPORTED_SERVICES: List[ServiceName] = [
    "acm",
    "codepipeline",
    "elasticache",
    "gamelift",
    "inspector",
    "iot",
    "rds",
    "route53",
    "ssm",
    "support",
    "swf",
    "waf",
]


def load_spec_patches(file_path: str = None) -> Dict[str, list]:
    file_path = file_path or config.SPEC_PATCHES_FILE
    if not os.path.exists(file_path):
        return {}
    with open(file_path) as fd:
        return json.load(fd)


class PatchingLoader(Loader):
    """
    A custom botocore Loader that applies JSON patches from the given json patch file to the specs as they are loaded.
    """

    patches: Dict[str, list]

    def __init__(self, patches: Dict[str, list], *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.patches = patches

    @instance_cache
    def load_data(self, name: str):
        result = super(PatchingLoader, self).load_data(name)

        if patches := self.patches.get(name):
            LOG.debug("Applying %d patch operations to %s", len(patches), name)
            return jsonpatch.apply_patch(result, patches)

        return result


loader = PatchingLoader(load_spec_patches())


def list_services(model_type="service-2") -> List[ServiceModel]:
    return [load_service(service, model_type=model_type) for service in SUPPORTED_SERVICES]


def get_protocol(service: ServiceModel) -> Optional[str]:
    """
    Returns the protocol which is used to transcode the messages of the given service. Newer service models list all
    protocols the service understands in ``metadata.protocols`` (in the order of preference, f.e.
    ``["smithy-rpc-v2-cbor", "json"]``), the first one which is supported wins.

    :param service: model of the service
    :return: the supported protocol, or None if the service does not understand any of them
    """
    for protocol in get_protocols(service):
        if protocol in SUPPORTED_PROTOCOLS:
            return protocol
    return None


def get_protocols(service: ServiceModel) -> List[str]:
    return service.metadata.get("protocols") or [service.protocol]


def load_service(
    service: ServiceName, version: str = None, protocol: str = None, model_type="service-2"
) -> ServiceModel:
    """
    For example: load_service("swf", "2012-01-25")

    :param service: name of the service
    :param version: API version of the service (latest if not set)
    :param protocol: protocol the service is expected to understand
    :raises UnknownServiceError: if botocore does not know the service
    :raises UnknownServiceProtocolError: if the service does not understand the expected protocol
    """
    service_description = loader.load_service_model(service, model_type, version)
    service_model = ServiceModel(service_description, service)
    if protocol and protocol not in get_protocols(service_model):
        raise UnknownServiceProtocolError(service, service_model.protocol)
    return service_model


def iterate_service_operations() -> Generator[Tuple[ServiceModel, OperationModel], None, None]:
    """
    Returns one record per operation of the supported services, where the first item is the service model the
    operation belongs to, and the second is the operation model.

    :return: an iterable
    """
    for service in list_services():
        for op_name in service.operation_names:
            yield service, service.operation_model(op_name)


class ServiceCatalog:
    """
    Cached access to the models of a set of services.
    """

    def __init__(self, service_names: List[ServiceName] = None):
        self.service_names = list(service_names or SUPPORTED_SERVICES)
        self._services: Dict[ServiceName, ServiceModel] = {}

    def get(self, name: ServiceName) -> Optional[ServiceModel]:
        if name not in self._services:
            self._services[name] = load_service(name)
        return self._services[name]

    @cached_property
    def operations_index(self) -> Dict[str, List[ServiceModel]]:
        result = defaultdict(list)
        for service_name in self.service_names:
            service_model = self.get(service_name)
            for operation in service_model.operation_names:
                result[operation].append(service_model)
        return dict(result)

    def by_operation(self, operation_name: str) -> List[ServiceModel]:
        return self.operations_index.get(operation_name, [])
