import os

# root code folder
MODULE_MAIN_PATH = os.path.dirname(os.path.realpath(__file__))

# default encoding used to convert strings to byte arrays
DEFAULT_ENCODING = "utf-8"

# content types / encodings
APPLICATION_AMZ_JSON_1_0 = "application/x-amz-json-1.0"
APPLICATION_JSON = "application/json"
APPLICATION_XML = "application/xml"
APPLICATION_X_WWW_FORM_URLENCODED = "application/x-www-form-urlencoded; charset=utf-8"

# strings to indicate truthy/falsy values
TRUE_STRINGS = ("1", "true", "True")
FALSE_STRINGS = ("0", "false", "False")

# log levels
LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "warning")
SHAPEWIRE_LOG_TRACE = "trace"
TRACE_LOG_LEVELS = [SHAPEWIRE_LOG_TRACE]

# protocols which are supported by the marshallers and unmarshallers
SUPPORTED_PROTOCOLS = ("query", "json", "rest-json", "rest-xml")

# name of the JSON file (next to the package) containing patches for the botocore specs
SPEC_PATCHES_FILE_NAME = "spec-patches.json"
