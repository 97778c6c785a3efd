"""Status, result, operation and protocol constants."""

# global/branch transaction status
STATUS_PREPARED = "prepared"
STATUS_SUBMITTED = "submitted"
STATUS_SUCCEED = "succeed"
STATUS_FAILED = "failed"
STATUS_ABORTING = "aborting"

# results of a transaction or branch (HTTP 409 / 200 / 425)
RESULT_FAILURE = "FAILURE"
RESULT_SUCCESS = "SUCCESS"
RESULT_ONGOING = "ONGOING"

# branch operations
OP_TRY = "try"
OP_CONFIRM = "confirm"
OP_CANCEL = "cancel"
OP_ACTION = "action"
OP_COMPENSATE = "compensate"
OP_COMMIT = "commit"
OP_ROLLBACK = "rollback"

DB_TYPE_MYSQL = "mysql"
DB_TYPE_POSTGRES = "postgres"
DB_TYPE_REDIS = "redis"

JRPC = "json-rpc"
JRPC_CODE_FAILURE = -32901
JRPC_CODE_ONGOING = -32902

# special barrier used by msg do-and-submit
MSG_DO_BRANCH0 = "00"
MSG_DO_BARRIER1 = "01"
MSG_DO_OP = "msg"

XA_BARRIER1 = "01"

PROTOCOL_GRPC = "grpc"
PROTOCOL_HTTP = "http"

MAP_SUCCESS = {"dtm_result": RESULT_SUCCESS}
MAP_FAILURE = {"dtm_result": RESULT_FAILURE}