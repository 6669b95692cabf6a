"""
Runtime counterparts of the generated service API modules: enum classes for the enum shapes of a service, and the
capability-set base class of a service, in which every operation raises an ``OperationNotImplementedError`` until an
implementation overrides it.
"""
import inspect
import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Type, Union

from botocore import xform_name
from botocore.model import ServiceModel, Shape, StringShape

from shapewire.api.core import (
    OperationNotImplementedError,
    ServiceRequest,
    ServiceResponse,
    WireEnum,
    handler,
)
from shapewire.scaffold import to_valid_python_name
from shapewire.spec import load_service
from shapewire.utils.strings import snake_to_camel_case

LOG = logging.getLogger(__name__)


def create_enum(shape: Shape) -> Type[WireEnum]:
    """
    Creates the ``WireEnum`` class for the given enum string shape.

    :param shape: string shape with an enum trait
    :return: a new WireEnum subclass named after the shape
    :raises ValueError: if the shape is not an enum shape
    """
    if not isinstance(shape, StringShape) or not shape.enum:
        raise ValueError(f"Shape {shape.name} is not an enum shape")
    members = {to_valid_python_name(value): value for value in shape.enum}
    return type(to_valid_python_name(shape.name), (WireEnum,), members)


def create_api_stub(service: Union[str, ServiceModel]) -> type:
    """
    Creates the capability-set base class for the given service. The class has one ``@handler`` method per operation
    (named like ``xform_name(operation)``) which raises an ``OperationNotImplementedError``.
    """
    if isinstance(service, str):
        service = load_service(service)

    attributes = {"service": service.service_name, "version": service.api_version}
    for operation_name in service.operation_names:
        attributes[xform_name(operation_name)] = _create_default_handler(
            service.service_name, operation_name
        )
    class_name = snake_to_camel_case(service.service_name.replace("-", "_") + "_api")
    return type(class_name, (), attributes)


def _create_default_handler(service_name: str, operation_name: str) -> Callable:
    def operation(self, **kwargs):
        raise OperationNotImplementedError(service_name, operation_name)

    operation.__name__ = xform_name(operation_name)
    operation.default_implementation = True
    return handler(operation_name)(operation)


class HandlerAttributes(NamedTuple):
    """
    Holder object of the attributes added to a function by the @handler decorator.
    """

    function_name: str
    operation: str
    expand_parameters: bool


class ServiceRequestDispatcher:
    fn: Callable
    operation: str
    expand_parameters: bool = True

    def __init__(self, fn: Callable, operation: str, expand_parameters: bool = True):
        self.fn = fn
        self.operation = operation
        self.expand_parameters = expand_parameters

    @property
    def is_default_implementation(self) -> bool:
        return getattr(self.fn, "default_implementation", False)

    def __call__(self, request: Optional[ServiceRequest]) -> Optional[ServiceResponse]:
        if not self.expand_parameters:
            return self.fn(request)

        if request is None:
            kwargs = {}
        else:
            kwargs = {xform_name(k): v for k, v in request.items()}
        return self.fn(**kwargs)


DispatchTable = Dict[str, ServiceRequestDispatcher]


def create_dispatch_table(delegate: Any) -> DispatchTable:
    """
    Creates a dispatch table for a given object. First, the entire class tree of the object is scanned to find any
    functions that are decorated with @handler. It then resolves those functions on the delegate.
    """
    # scan class tree for @handler wrapped functions (reverse class tree so that inherited functions overwrite parent
    # functions)
    cls_tree = reversed(inspect.getmro(delegate.__class__))
    handlers: Dict[str, HandlerAttributes] = {}
    for cls in cls_tree:
        if cls == object:
            continue

        for name, fn in inspect.getmembers(cls, inspect.isfunction):
            try:
                # attributes come from operation_marker in @handler wrapper
                handlers[fn.operation] = HandlerAttributes(
                    fn.__name__, fn.operation, fn.expand_parameters
                )
            except AttributeError:
                pass

    # create dispatch table from operation handlers by resolving bound functions on the delegate
    dispatch_table: DispatchTable = {}
    for attributes in handlers.values():
        bound_function = getattr(delegate, attributes.function_name)
        dispatch_table[attributes.operation] = ServiceRequestDispatcher(
            bound_function,
            operation=attributes.operation,
            expand_parameters=attributes.expand_parameters,
        )

    return dispatch_table


def missing_operations(service: Union[str, ServiceModel], delegate: Any) -> List[str]:
    """
    Returns the names of the operations of the service which the delegate does not implement (either there is no
    handler for the operation at all, or the handler is still the default implementation of the API stub).
    """
    if isinstance(service, str):
        service = load_service(service)

    dispatch_table = create_dispatch_table(delegate)
    missing = []
    for operation_name in service.operation_names:
        dispatcher = dispatch_table.get(operation_name)
        if dispatcher is None or dispatcher.is_default_implementation:
            missing.append(operation_name)
    if missing:
        LOG.debug(
            "%d operations of %s are not implemented by %s",
            len(missing),
            service.service_name,
            type(delegate).__name__,
        )
    return missing
