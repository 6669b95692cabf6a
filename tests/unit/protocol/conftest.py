import copy

import pytest
from botocore.model import ServiceModel

WIDGETS_NAMESPACE = "https://widgets.example.com/doc/2020-01-01/"

# shapes shared by all protocol variants of the widgets test service
WIDGET_SHAPES = {
    "WidgetName": {"type": "string"},
    "MaxItems": {"type": "integer"},
    "Marker": {"type": "string"},
    "Long": {"type": "long"},
    "Boolean": {"type": "boolean"},
    "Double": {"type": "double"},
    "Timestamp": {"type": "timestamp"},
    "Blob": {"type": "blob"},
    "WidgetState": {"type": "string", "enum": ["ACTIVE", "RETIRED"]},
    "ItemList": {"type": "list", "member": {"shape": "WidgetName"}},
    "TagMap": {
        "type": "map",
        "key": {"shape": "WidgetName"},
        "value": {"shape": "WidgetName"},
    },
    "ValueList": {"type": "list", "member": {"shape": "WidgetName", "locationName": "Value"}},
    "Filter": {
        "type": "structure",
        "members": {"Name": {"shape": "WidgetName"}, "Values": {"shape": "ValueList"}},
    },
    "FilterList": {"type": "list", "member": {"shape": "Filter", "locationName": "Filter"}},
    "WidgetDetail": {
        "type": "structure",
        "members": {
            "name": {"shape": "WidgetName"},
            "size": {"shape": "Long"},
            "state": {"shape": "WidgetState"},
        },
    },
    "DetailList": {"type": "list", "member": {"shape": "WidgetDetail"}},
    "ListWidgetsRequest": {
        "type": "structure",
        "required": ["name"],
        "members": {
            "name": {"shape": "WidgetName"},
            "maxItems": {"shape": "MaxItems"},
            "filters": {"shape": "FilterList"},
            "tags": {"shape": "TagMap"},
            "createdAfter": {"shape": "Timestamp"},
            "verbose": {"shape": "Boolean"},
        },
    },
    "ListWidgetsResult": {
        "type": "structure",
        "members": {
            "items": {"shape": "ItemList"},
            "nextMarker": {"shape": "Marker"},
            "details": {"shape": "DetailList"},
            "tags": {"shape": "TagMap"},
            "count": {"shape": "MaxItems"},
            "lastModified": {"shape": "Timestamp"},
            "ratio": {"shape": "Double"},
        },
    },
    "GetWidgetRequest": {
        "type": "structure",
        "required": ["name"],
        "members": {
            "name": {"shape": "WidgetName", "location": "uri", "locationName": "name"},
            "maxItems": {
                "shape": "MaxItems",
                "location": "querystring",
                "locationName": "max-items",
            },
            "states": {"shape": "ItemList", "location": "querystring", "locationName": "state"},
            "verbose": {"shape": "Boolean", "location": "header", "locationName": "x-amz-verbose"},
            "since": {"shape": "Timestamp", "location": "header", "locationName": "If-Modified-Since"},
            "tags": {"shape": "TagMap", "location": "headers", "locationName": "x-amz-meta-"},
        },
    },
    "GetWidgetResponse": {
        "type": "structure",
        "members": {
            "detail": {"shape": "WidgetDetail"},
            "requestId": {
                "shape": "WidgetName",
                "location": "header",
                "locationName": "x-amz-request-id",
            },
            "lastModified": {
                "shape": "Timestamp",
                "location": "header",
                "locationName": "Last-Modified",
            },
            "labels": {"shape": "ItemList", "location": "header", "locationName": "x-amz-labels"},
            "metadata": {"shape": "TagMap", "location": "headers", "locationName": "x-amz-meta-"},
            "status": {"shape": "MaxItems", "location": "statusCode"},
        },
    },
    "CreateWidgetRequest": {
        "type": "structure",
        "required": ["name"],
        "members": {
            "name": {"shape": "WidgetName"},
            "tags": {"shape": "TagMap"},
            "filters": {"shape": "FilterList"},
            "createdAfter": {"shape": "Timestamp"},
            "dryRun": {"shape": "Boolean", "location": "header", "locationName": "x-amz-dry-run"},
        },
    },
    "GetWidgetFileRequest": {
        "type": "structure",
        "required": ["key"],
        "members": {"key": {"shape": "WidgetName", "location": "uri", "locationName": "key"}},
    },
    "PutWidgetDataRequest": {
        "type": "structure",
        "required": ["name"],
        "members": {
            "name": {"shape": "WidgetName", "location": "uri", "locationName": "name"},
            "data": {"shape": "Blob"},
        },
        "payload": "data",
    },
    "GetWidgetDataResponse": {
        "type": "structure",
        "members": {"data": {"shape": "Blob"}},
        "payload": "data",
    },
}


def _create_widgets_service(
    protocol: str, shape_patches: dict = None, protocols: list = None
) -> ServiceModel:
    metadata = {
        "apiVersion": "2020-01-01",
        "endpointPrefix": "widgets",
        "protocol": protocol,
        "serviceFullName": "Widget Service",
        "serviceId": "Widgets",
        "signatureVersion": "v4",
        "uid": "widgets-2020-01-01",
    }
    if protocols:
        metadata["protocols"] = protocols
    if {"json", "rest-json"}.intersection(protocols or [protocol]):
        metadata["jsonVersion"] = "1.1"
        metadata["targetPrefix"] = "WidgetService"
    if {"query", "rest-xml"}.intersection(protocols or [protocol]):
        metadata["xmlNamespace"] = WIDGETS_NAMESPACE

    list_widgets_output = {"shape": "ListWidgetsResult"}
    if protocol == "query":
        list_widgets_output["resultWrapper"] = "ListWidgetsResult"

    create_widget_input = {"shape": "CreateWidgetRequest"}
    if protocol == "rest-xml":
        create_widget_input["locationName"] = "CreateWidgetRequest"
        create_widget_input["xmlNamespace"] = {"uri": WIDGETS_NAMESPACE}

    operations = {
        "ListWidgets": {
            "name": "ListWidgets",
            "http": {"method": "POST", "requestUri": "/"},
            "input": {"shape": "ListWidgetsRequest"},
            "output": list_widgets_output,
        },
        "GetWidget": {
            "name": "GetWidget",
            "http": {"method": "GET", "requestUri": "/widgets/{name}?details"},
            "input": {"shape": "GetWidgetRequest"},
            "output": {"shape": "GetWidgetResponse"},
        },
        "CreateWidget": {
            "name": "CreateWidget",
            "http": {"method": "POST", "requestUri": "/widgets"},
            "input": create_widget_input,
            "output": {"shape": "WidgetDetail"},
        },
        "GetWidgetFile": {
            "name": "GetWidgetFile",
            "http": {"method": "GET", "requestUri": "/files/{key+}"},
            "input": {"shape": "GetWidgetFileRequest"},
        },
        "PutWidgetData": {
            "name": "PutWidgetData",
            "http": {"method": "PUT", "requestUri": "/widgets/{name}/data"},
            "input": {"shape": "PutWidgetDataRequest"},
            "output": {"shape": "GetWidgetDataResponse"},
        },
    }
    shapes = copy.deepcopy(WIDGET_SHAPES)
    shapes.update(copy.deepcopy(shape_patches or {}))
    description = {
        "version": "2.0",
        "metadata": metadata,
        "operations": operations,
        "shapes": shapes,
    }
    return ServiceModel(description, "widgets")


@pytest.fixture
def widgets_service():
    """Factory fixture which creates the widgets test service for the given protocol."""
    return _create_widgets_service
