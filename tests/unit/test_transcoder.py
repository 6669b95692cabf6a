import json

from werkzeug.datastructures import Headers

from shapewire.api import WireFrame
from shapewire.protocol.marshaller import JSONRequestMarshaller
from shapewire.protocol.unmarshaller import JSONResponseUnmarshaller
from shapewire.transcoder import ServiceTranscoder, get_transcoder


def test_get_transcoder_is_cached():
    assert get_transcoder("swf") is get_transcoder("swf")


def test_transcoder_for_service_model(swf_service):
    transcoder = ServiceTranscoder(swf_service)

    assert transcoder.service is swf_service
    assert isinstance(transcoder.marshaller, JSONRequestMarshaller)
    assert isinstance(transcoder.unmarshaller, JSONResponseUnmarshaller)
    assert repr(transcoder) == "ServiceTranscoder(swf, json)"


def test_marshall_and_unmarshall_by_operation_name():
    transcoder = get_transcoder("swf")

    frame = transcoder.marshall("DescribeDomain", {"name": "test-domain"})
    assert frame.headers["X-Amz-Target"] == "SimpleWorkflowService.DescribeDomain"
    assert json.loads(frame.body) == {"name": "test-domain"}

    response = WireFrame(
        body=b'{"domainInfo": {"name": "test-domain", "status": "REGISTERED"},'
        b' "configuration": {"workflowExecutionRetentionPeriodInDays": "30"}}',
        headers=Headers({"Content-Type": "application/x-amz-json-1.0"}),
    )
    result = transcoder.unmarshall("DescribeDomain", response)
    assert result == {
        "domainInfo": {"name": "test-domain", "status": "REGISTERED"},
        "configuration": {"workflowExecutionRetentionPeriodInDays": "30"},
    }


def test_operation_models_are_passed_through(swf_service):
    transcoder = ServiceTranscoder(swf_service)
    operation = swf_service.operation_model("CountPendingActivityTasks")
    assert transcoder.operation(operation) is operation
    assert transcoder.operation("CountPendingActivityTasks") is operation


def test_gamelift_is_transcoded_with_json():
    transcoder = get_transcoder("gamelift")
    assert repr(transcoder) == "ServiceTranscoder(gamelift, json)"

    frame = transcoder.marshall("ListFleets", {"Limit": 10})
    assert frame.headers["X-Amz-Target"] == "GameLift.ListFleets"
    assert frame.headers["Content-Type"] == "application/x-amz-json-1.1"
    assert json.loads(frame.body) == {"Limit": 10}

    response = WireFrame(
        body=b'{"FleetIds": ["fleet-1"], "NextToken": "t"}',
        headers=Headers({"Content-Type": "application/x-amz-json-1.1"}),
    )
    result = transcoder.unmarshall("ListFleets", response)
    assert result == {"FleetIds": ["fleet-1"], "NextToken": "t"}
