"""Protocol constants.

Keep these in one place to avoid stringly-typed envelope handling.
"""

# Version of the envelope layout implemented here. A recipient drops (or,
# for requests, refuses) anything claiming a different version.
VERSION = 1

OK = "ok"
ERROR = "error"

STATUSES = (OK, ERROR)

# Envelope keys
ID = "id"
OPERATION = "operation"
REPLY_TO = "reply_to"
PAYLOAD = "payload"
STATUS = "status"
RESULT = "result"
ERROR_DETAIL = "error"
TIME = "time"
VERSION_KEY = "version"
