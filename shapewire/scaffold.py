import io
import keyword
import logging
import os
import re
from functools import cached_property
from multiprocessing import Pool
from pathlib import Path
from typing import Dict, List, Optional, Set

import click
from botocore import xform_name
from botocore.exceptions import UnknownServiceError
from botocore.model import (
    ListShape,
    MapShape,
    OperationModel,
    ServiceModel,
    Shape,
    StringShape,
    StructureShape,
)

from shapewire import config
from shapewire.logging.setup import setup_logging_from_config
from shapewire.spec import load_service
from shapewire.utils.strings import snake_to_camel_case
from shapewire.version import __version__

# Some specs define shapes called like the names used by the generated module ("List", "Optional", "WireEnum"),
# the enum classes must not shadow the classmethods of WireEnum
KEYWORDS = list(keyword.kwlist) + [
    "type",
    "Optional",
    "Union",
    "List",
    "Dict",
    "TypedDict",
    "WireEnum",
    "ServiceRequest",
    "OperationNotImplementedError",
    "handler",
    "datetime",
    "values",
    "from_wire",
    "to_wire",
]
is_keyword = KEYWORDS.__contains__


def is_bad_param_name(name: str) -> bool:
    if name in ("self", "kwargs"):
        return True

    if is_keyword(name):
        return True

    return False


def to_valid_python_name(spec_name: str) -> str:
    sanitized = re.sub(r"[^0-9a-zA-Z_]+", "_", spec_name)

    if not sanitized or sanitized == "_":
        sanitized = "EMPTY" + sanitized

    if sanitized[0].isnumeric():
        sanitized = "i_" + sanitized

    if is_keyword(sanitized):
        sanitized += "_"

    if sanitized.startswith("__"):
        sanitized = sanitized[1:]

    return sanitized


class ShapeNode:
    service: ServiceModel
    shape: Shape

    def __init__(self, service: ServiceModel, shape: Shape) -> None:
        super().__init__()
        self.service = service
        self.shape = shape

    @cached_property
    def request_operation(self) -> Optional[OperationModel]:
        for operation_name in self.service.operation_names:
            operation = self.service.operation_model(operation_name)
            if operation.input_shape is None:
                continue

            if to_valid_python_name(self.shape.name) == to_valid_python_name(
                operation.input_shape.name
            ):
                return operation

        return None

    @cached_property
    def is_request(self):
        return self.request_operation is not None

    @property
    def name(self) -> str:
        return to_valid_python_name(self.shape.name)

    @property
    def is_primitive(self):
        return self.shape.type_name in [
            "integer",
            "long",
            "boolean",
            "float",
            "double",
            "string",
            "blob",
            "timestamp",
        ]

    @property
    def is_enum(self):
        return isinstance(self.shape, StringShape) and self.shape.enum

    @property
    def dependencies(self) -> List[str]:
        shape = self.shape

        if isinstance(shape, StructureShape):
            return [to_valid_python_name(v.name) for v in shape.members.values()]
        if isinstance(shape, ListShape):
            return [to_valid_python_name(shape.member.name)]
        if isinstance(shape, MapShape):
            return [to_valid_python_name(shape.key.name), to_valid_python_name(shape.value.name)]

        return []

    def _print_structure_declaration(self, output, quote_types=False):
        if any(not k.isidentifier() or is_keyword(k) for k in self.shape.members.keys()):
            self._print_as_typed_dict(output, quote_types)
            return

        if self.is_request:
            base = "ServiceRequest"
        else:
            base = "TypedDict, total=False"

        self._print_as_class(output, base, quote_types)

    def _print_as_class(self, output, base: str, quote_types=False):
        output.write(f"class {self.name}({base}):\n")

        q = '"' if quote_types else ""

        if not self.shape.members:
            output.write("    pass\n")

        for k, v in self.shape.members.items():
            if k in self.shape.required_members:
                output.write(f"    {k}: {q}{to_valid_python_name(v.name)}{q}\n")
            else:
                output.write(f"    {k}: Optional[{q}{to_valid_python_name(v.name)}{q}]\n")

    def _print_as_typed_dict(self, output, quote_types=False):
        name = self.name
        q = '"' if quote_types else ""
        output.write('%s = TypedDict("%s", {\n' % (name, name))
        for k, v in self.shape.members.items():
            if k in self.shape.required_members:
                output.write(f'    "{k}": {q}{to_valid_python_name(v.name)}{q},\n')
            else:
                output.write(f'    "{k}": Optional[{q}{to_valid_python_name(v.name)}{q}],\n')
        output.write("}, total=False)")

    def print_declaration(self, output, quote_types=False):
        shape = self.shape

        q = '"' if quote_types else ""

        if isinstance(shape, StructureShape):
            self._print_structure_declaration(output, quote_types)
        elif isinstance(shape, ListShape):
            output.write(f"{self.name} = List[{q}{to_valid_python_name(shape.member.name)}{q}]")
        elif isinstance(shape, MapShape):
            output.write(
                f"{self.name} = Dict[{q}{to_valid_python_name(shape.key.name)}{q}, {q}{to_valid_python_name(shape.value.name)}{q}]"
            )
        elif isinstance(shape, StringShape):
            if shape.enum:
                output.write(f"class {self.name}(WireEnum):\n")
                for value in shape.enum:
                    name = to_valid_python_name(value)
                    output.write(f"    {name} = {value!r}\n")
            else:
                output.write(f"{self.name} = str")
        elif shape.type_name in ("string", "character"):
            output.write(f"{self.name} = str")
        elif shape.type_name in ("integer", "long"):
            output.write(f"{self.name} = int")
        elif shape.type_name in ("double", "float"):
            output.write(f"{self.name} = float")
        elif shape.type_name == "boolean":
            output.write(f"{self.name} = bool")
        elif shape.type_name == "blob":
            output.write(f"{self.name} = bytes")
        elif shape.type_name == "timestamp":
            output.write(f"{self.name} = datetime")
        else:
            output.write(f"# unknown shape type for {self.name}: {shape.type_name}")

        output.write("\n")

    def get_order(self):
        """
        Defines a basic order in which to sort the stack of shape nodes before printing.
        First all non-enum primitives are printed, then enums, then all other types.
        """
        if self.is_primitive:
            if self.is_enum:
                return 1
            else:
                return 0

        return 2


def generate_service_types(output, service: ServiceModel):
    output.write("from datetime import datetime\n")
    output.write("from typing import Dict, List, Optional, TypedDict\n")
    output.write("\n")
    output.write(
        "from shapewire.api import OperationNotImplementedError, ServiceRequest, WireEnum, handler\n"
    )
    output.write("\n")

    # ==================================== print type declarations
    nodes: Dict[str, ShapeNode] = {}

    for shape_name in service.shape_names:
        shape = service.shape_for(shape_name)
        nodes[to_valid_python_name(shape_name)] = ShapeNode(service, shape)

    printed: Set[str] = set()
    visited: Set[str] = set()
    stack: List[str] = list(nodes.keys())

    stack = sorted(stack, key=lambda name: nodes[name].get_order())
    stack.reverse()

    while stack:
        name = stack.pop()
        if name in printed:
            continue
        node = nodes[name]

        dependencies = [dep for dep in node.dependencies if dep not in printed]

        if not dependencies:
            node.print_declaration(output)
            printed.add(name)
        elif name in visited:
            # break out of circular dependencies
            node.print_declaration(output, quote_types=True)
            printed.add(name)
        else:
            stack.append(name)
            stack.extend(dependencies)
            visited.add(name)


def generate_service_api(output, service: ServiceModel):
    service_name = service.service_name.replace("-", "_")
    class_name = snake_to_camel_case(service_name + "_api")

    output.write("\n\n")
    output.write(f"class {class_name}:\n")
    output.write("\n")
    output.write(f'    service = "{service.service_name}"\n')
    output.write(f'    version = "{service.api_version}"\n')
    for op_name in service.operation_names:
        operation: OperationModel = service.operation_model(op_name)

        fn_name = xform_name(op_name)

        if operation.output_shape:
            output_shape = to_valid_python_name(operation.output_shape.name)
        else:
            output_shape = "None"

        output.write("\n")
        parameters = {}

        if input_shape := operation.input_shape:
            members = list(input_shape.members)

            for m in input_shape.required_members:
                members.remove(m)
                m_shape = input_shape.members[m]
                parameters[xform_name(m)] = to_valid_python_name(m_shape.name)

            for m in members:
                m_shape = input_shape.members[m]
                parameters[xform_name(m)] = f"{to_valid_python_name(m_shape.name)} = None"

        if any(map(is_bad_param_name, parameters.keys())):
            # if we cannot render the parameter name, don't expand the parameters in the handler
            param_list = f"request: {to_valid_python_name(input_shape.name)}"
            output.write(f'    @handler("{operation.name}", expand=False)\n')
        else:
            param_list = ", ".join([f"{k}: {v}" for k, v in parameters.items()] + ["**kwargs"])
            output.write(f'    @handler("{operation.name}")\n')

        output.write(f"    def {fn_name}(self, {param_list}) -> {output_shape}:\n")
        output.write(
            f'        raise OperationNotImplementedError(self.service, "{operation.name}")\n'
        )


def _setup_cli_debug():
    from shapewire.logging.setup import setup_logging_for_cli

    config.DEBUG = True
    os.environ["DEBUG"] = "1"

    setup_logging_for_cli(logging.DEBUG)


@click.group()
@click.version_option(version=__version__, message="%(version)s")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def scaffold(debug):
    if debug:
        _setup_cli_debug()
    else:
        setup_logging_from_config()


@scaffold.command(name="generate")
@click.argument("service", type=str)
@click.option(
    "--save/--print",
    default=False,
    help="whether or not to save the result into the api directory",
)
@click.option("--path", default="./shapewire/api", help="the path where the api should be saved")
def generate(service: str, save: bool, path: str):
    """
    Generate types and API stubs for a given AWS service.

    SERVICE is the service to generate the stubs for (e.g., swf, or rds)
    """
    from click import ClickException

    try:
        code = generate_code(service)
    except UnknownServiceError:
        raise ClickException(f"unknown service {service}")

    if not save:
        # either just print the code to stdout
        click.echo(code)
        return

    # or find the file path and write the code to that location
    create_code_directory(service, code, path)
    click.echo("done!")


def generate_code(service_name: str) -> str:
    model = load_service(service_name)
    output = io.StringIO()
    generate_service_types(output, model)
    generate_service_api(output, model)
    return output.getvalue()


def create_code_directory(service_name: str, code: str, base_path: str):
    service_name = service_name.replace("-", "_")
    # handle service names which are reserved keywords in python
    if is_keyword(service_name):
        service_name += "_"
    path = Path(base_path, service_name)

    if not path.exists():
        click.echo(f"creating directory {path}")
        path.mkdir(parents=True)

    file = path / "__init__.py"
    click.echo(f"writing to file {file}")
    file.write_text(code)


@scaffold.command()
@click.option(
    "--path",
    default="./shapewire/api",
    help="the path in which to upgrade the generated APIs",
)
def upgrade(path: str):
    """
    Execute the code generation for all existing APIs.
    """
    services = [
        d.name.rstrip("_").replace("_", "-")
        for d in Path(path).iterdir()
        if d.is_dir() and not d.name.startswith("__")
    ]

    with Pool() as pool:
        pool.starmap(_do_generate_code, [(service, path) for service in services])

    click.echo("done!")


def _do_generate_code(service: str, path: str):
    try:
        code = generate_code(service)
    except UnknownServiceError:
        click.echo(f"unknown service {service}! skipping...")
        return
    create_code_directory(service, code, base_path=path)


if __name__ == "__main__":
    scaffold()
