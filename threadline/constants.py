"""Response codes and fixed limits shared by the handlers."""

from enum import IntEnum


class ResCode(IntEnum):
    SUCCESS = 0
    NO_PARAM = 100
    FAIL = 1000
    EVENT_NOT_EXIST = 1001
    PASS_EXIST = 1010
    CONFIG_NOT_EXIST = 1020
    CREDENTIALS_NOT_EXIST = 1021
    PASS_NOT_EXIST = 1022
    PASS_NOT_MATCH = 1023
    NEED_LOGIN = 1024
    CREDENTIALS_INVALID = 1025
    AKISMET_ERROR = 1030
    UPLOAD_FAILED = 1040
    FORBIDDEN = 1403


# 2100-01-01 in epoch ms, times ten; "no cursor" for page reads
MAX_TIMESTAMP_MILLIS = 41025312000000

# Pinned comments fetched on a first page
MAX_QUERY_LIMIT = 500

DEFAULT_PAGE_SIZE = 8

# Submission windows
SUBMIT_WINDOW_MS = 600_000
DEFAULT_SUBMIT_LIMIT = 10

DEFAULT_RECENT_PAGE_SIZE = 10
MAX_RECENT_PAGE_SIZE = 100

DEFAULT_LIMIT_LENGTH = 500

ANONYMOUS_NICK = "Anonymous"
