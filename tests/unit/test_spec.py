import json

import pytest
from botocore.exceptions import UnknownServiceError
from botocore.model import ServiceModel, StringShape

from shapewire.constants import SUPPORTED_PROTOCOLS
from shapewire.protocol.errors import UnknownServiceProtocolError
from shapewire.spec import (
    SUPPORTED_SERVICES,
    PatchingLoader,
    ServiceCatalog,
    get_protocol,
    iterate_service_operations,
    list_services,
    load_service,
    load_spec_patches,
)


def test_patching_loader():
    # first test that specs remain intact
    loader = PatchingLoader({})
    description = loader.load_service_model("swf", "service-2")
    model = ServiceModel(description, "swf")
    assert "revision" not in model.shape_for("ActivityType").members

    # now try it with a patch
    loader = PatchingLoader(
        {
            "swf/2012-01-25/service-2": [
                {
                    "op": "add",
                    "path": "/shapes/ActivityType/members/revision",
                    "value": {"shape": "Version"},
                },
            ]
        }
    )
    description = loader.load_service_model("swf", "service-2", "2012-01-25")
    model = ServiceModel(description, "swf")

    shape = model.shape_for("ActivityType")
    assert "revision" in shape.members
    assert isinstance(shape.members["revision"], StringShape)


def test_load_spec_patches(tmp_path):
    patches = {"swf/2012-01-25/service-2": [{"op": "remove", "path": "/shapes/ActivityType"}]}
    file_path = tmp_path / "spec-patches.json"
    file_path.write_text(json.dumps(patches))

    assert load_spec_patches(str(file_path)) == patches
    assert load_spec_patches(str(tmp_path / "does-not-exist.json")) == {}


@pytest.mark.parametrize(
    "service_name,protocol,expected_protocol",
    [
        ("swf", None, "json"),
        ("swf", "json", "json"),
        ("rds", "query", "query"),
        ("route53", None, "rest-xml"),
        ("iot", "rest-json", "rest-json"),
    ],
)
def test_load_service(service_name, protocol, expected_protocol):
    service = load_service(service_name, protocol=protocol)
    assert service.service_name == service_name
    assert service.protocol == expected_protocol


def test_get_protocol_prefers_first_supported_protocol():
    description = {
        "metadata": {"protocol": "smithy-rpc-v2-cbor", "protocols": ["smithy-rpc-v2-cbor", "json"]},
        "operations": {},
        "shapes": {},
    }
    assert get_protocol(ServiceModel(description, "widgets")) == "json"

    description["metadata"]["protocols"] = ["smithy-rpc-v2-cbor", "query", "json"]
    assert get_protocol(ServiceModel(description, "widgets")) == "query"

    description["metadata"]["protocols"] = ["smithy-rpc-v2-cbor"]
    assert get_protocol(ServiceModel(description, "widgets")) is None


def test_get_protocol_without_protocol_list():
    assert get_protocol(load_service("route53")) == "rest-xml"


def test_gamelift_uses_json():
    service = load_service("gamelift", protocol="json")
    assert get_protocol(service) == "json"


@pytest.mark.parametrize(
    "service_name,protocol,expected_exception",
    [
        ("non-existing-service", None, UnknownServiceError),
        ("swf", "query", UnknownServiceProtocolError),
        ("route53", "nonexistingprotocol", UnknownServiceProtocolError),
    ],
)
def test_invalid_service_loading(service_name, protocol, expected_exception):
    with pytest.raises(expected_exception):
        load_service(service_name, protocol=protocol)


def test_supported_services_use_supported_protocols():
    services = list_services()
    assert [service.service_name for service in services] == SUPPORTED_SERVICES
    for service in services:
        assert get_protocol(service) in SUPPORTED_PROTOCOLS


def test_iterate_service_operations():
    operations = [
        (service.service_name, operation.name) for service, operation in iterate_service_operations()
    ]
    assert ("swf", "ListActivityTypes") in operations
    assert ("route53", "GetHostedZoneCount") in operations
    assert ("rds", "DescribeDBParameterGroups") in operations


class TestServiceCatalog:
    def test_get_is_cached(self):
        catalog = ServiceCatalog(["swf"])
        assert catalog.get("swf") is catalog.get("swf")

    def test_by_operation(self):
        catalog = ServiceCatalog(["swf", "route53", "rds"])

        services = catalog.by_operation("ListActivityTypes")
        assert [service.service_name for service in services] == ["swf"]
        assert catalog.by_operation("NonExistingOperation") == []

    def test_shared_operation_names(self):
        catalog = ServiceCatalog(["elasticache", "rds"])
        services = catalog.by_operation("AddTagsToResource")
        assert sorted(service.service_name for service in services) == ["elasticache", "rds"]

    def test_catalogs_do_not_share_models(self):
        catalog = ServiceCatalog(["swf"])
        other_catalog = ServiceCatalog(["swf"])

        assert catalog.get("swf") is catalog.get("swf")
        assert other_catalog.get("swf") is other_catalog.get("swf")
        assert catalog.get("swf") is not other_catalog.get("swf")
