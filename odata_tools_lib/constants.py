"""
Constants used throughout the OData tools library.
"""

# Edm primitive types mapped to JSON-Schema primitives for tool input schemas.
# Anything not listed here is exposed as a string.
EDM_SCHEMA_TYPES = {
    "Edm.Int16": "integer",
    "Edm.Int32": "integer",
    "Edm.Int64": "integer",
    "Edm.Byte": "integer",
    "Edm.SByte": "integer",
    "Edm.Decimal": "number",
    "Edm.Double": "number",
    "Edm.Single": "number",
    "Edm.Boolean": "boolean",
}

# Lowercased type markers treated as large binary/stream payloads
BINARY_TYPE_MARKERS = ("edm.binary", "edm.stream")
BINARY_TYPE_NAMES = ("binary", "stream")

# Parameter names accepted for a caller-supplied concurrency token
ETAG_PARAMETER_ALIASES = ("@odata.etag", "etag", "Etag", "ETag")
ETAG_BODY_FIELD = "@odata.etag"

# Structured query options, keyed by the bare name the caller may use
QUERY_OPTIONS = ("filter", "orderby", "select", "expand", "top", "skip", "count", "search")

DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_NAVIGATION_DEPTH = 3
DEFAULT_MAX_EXECUTION_SECONDS = 300.0
MAX_TOOL_NAME_LENGTH = 64
TOOL_VERSION = "1.0.0"
QUERY_TOOL_BASE_NAME = "odata_query"

# Error codes surfaced in tool results
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
ETAG_MISMATCH = "ETAG_MISMATCH"
ETAG_REQUIRED = "ETAG_REQUIRED"
TIMEOUT = "TIMEOUT"
CANCELLED = "CANCELLED"

USER_AGENT = "OData-Tools/1.0"

# XML namespaces for CSDL documents (v2 and v4)
NAMESPACES = {
    'edmx': 'http://schemas.microsoft.com/ado/2007/06/edmx',
    'edmx4': 'http://docs.oasis-open.org/odata/ns/edmx',
    'edm': 'http://schemas.microsoft.com/ado/2008/09/edm',
    'edm4': 'http://docs.oasis-open.org/odata/ns/edm',
    'm': 'http://schemas.microsoft.com/ado/2007/08/dataservices/metadata',
    'sap': 'http://www.sap.com/Protocols/SAPData',
}
