"""Guardrail policy for statements proposed by the language model.

The policy is deliberately permissive: the storefront is a security-training
target, so injection-shaped SELECTs and generally "dangerous" shell commands
must keep working. Only operations that would leave the training environment
unusable (dropping schema, deleting identities, stopping the service or host)
are denied.

A SQL statement runs only if it matches an allow pattern, matches no deny
pattern and references no restricted table. Deny wins over allow, and the
verdict reports the deny reason in preference to a bare "not allowed".
"""

import re
from enum import Enum
from typing import Iterable, List, Optional, Pattern, Set, Tuple

import sqlglot
from sqlglot.errors import SqlglotError
from sqlglot.tokens import TokenType

from models import GuardrailVerdict


class Domain(str, Enum):
    SQL = "sql"
    SHELL = "shell"


# reason codes, safe to surface to the user
STATEMENT_NOT_ALLOWED = "statement_not_allowed"
DESTRUCTIVE_DDL = "destructive_ddl"
IDENTITY_DELETION = "identity_deletion"
TIMING_ATTACK = "timing_attack"
RESTRICTED_TABLE = "restricted_table"
SERVICE_STOP = "service_stop"
HOST_SHUTDOWN = "host_shutdown"
ROOT_DELETION = "root_deletion"

REASON_DESCRIPTIONS = {
    STATEMENT_NOT_ALLOWED: "only SELECT queries and single-field updates are supported",
    DESTRUCTIVE_DDL: "it would drop or truncate part of the database",
    IDENTITY_DELETION: "it would delete user accounts or their security records",
    TIMING_ATTACK: "it uses delay functions",
    RESTRICTED_TABLE: "it touches a restricted table",
    SERVICE_STOP: "it would stop the running service",
    HOST_SHUTDOWN: "it would shut down or restart the host",
    ROOT_DELETION: "it would delete the root filesystem",
}

_FLAGS = re.IGNORECASE | re.DOTALL

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
_LITERAL = r"(?:'[^']*'|\"[^\"]*\"|-?\d+(?:\.\d+)?)"

ALLOWED_SQL_PATTERNS: List[Pattern] = [
    re.compile(r"^\s*SELECT\s+.*\s+FROM\s+.*$", _FLAGS),
    re.compile(r"^\s*WITH\s+.*\s+SELECT\s+.*\s+FROM\s+.*$", _FLAGS),
    re.compile(
        rf"^\s*UPDATE\s+{_IDENT}\s+SET\s+{_IDENT}\s*=\s*{_LITERAL}\s+WHERE\s+id\s*=\s*(?:\?|\d+)\s*;?\s*$",
        _FLAGS,
    ),
]

IDENTITY_TABLES = ("Users", "SecurityAnswers", "SecurityQuestions")

DENIED_SQL_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(r"\bDROP\s+", _FLAGS), DESTRUCTIVE_DDL),
    (re.compile(r"\bTRUNCATE\s+", _FLAGS), DESTRUCTIVE_DDL),
    (re.compile(r"\bALTER\s+TABLE\s+\S+\s+(?:DROP|RENAME)\b", _FLAGS), DESTRUCTIVE_DDL),
    (re.compile(r"\bDELETE\s+FROM\s+[`\"\[]?(?:%s)\b" % "|".join(IDENTITY_TABLES), _FLAGS), IDENTITY_DELETION),
    (re.compile(r"\bSLEEP\s*\(", _FLAGS), TIMING_ATTACK),
    (re.compile(r"\bPG_SLEEP\s*\(", _FLAGS), TIMING_ATTACK),
    (re.compile(r"\bBENCHMARK\s*\(", _FLAGS), TIMING_ATTACK),
    (re.compile(r"\bWAITFOR\s+DELAY\b", _FLAGS), TIMING_ATTACK),
]

# start of a command: beginning of input, after a separator or subshell opener, optionally behind sudo
_CMD = r"(?:^|[;&|`(\n]|\$\()\s*(?:sudo\s+(?:-\S+\s+)*)?"
_END = r"(?=\s|$|[;&|)`])"
# optional directory in front of the program name, e.g. /sbin/shutdown
_BIN = r"(?:[^\s;&|`()]*/)?"
_CMD += _BIN

DENIED_SHELL_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(_CMD + r"(?:docker|podman)\s+(?:container\s+)?(?:stop|kill|rm|pause|restart)\b", _FLAGS), SERVICE_STOP),
    (re.compile(_CMD + r"(?:docker-compose|docker\s+compose)\s+(?:down|stop|kill|rm)\b", _FLAGS), SERVICE_STOP),
    (re.compile(_CMD + r"systemctl\s+(?:stop|kill|isolate)\b", _FLAGS), SERVICE_STOP),
    (re.compile(_CMD + r"service\s+\S+\s+stop\b", _FLAGS), SERVICE_STOP),
    (re.compile(_CMD + r"(?:killall|pkill)\s+(?:-\S+\s+)*(?:python[\d.]*|uvicorn|gunicorn|node)\b", _FLAGS), SERVICE_STOP),
    (re.compile(_CMD + r"kill\s+(?:-\S+\s+)*-?1\s*(?:$|[;&|])", _FLAGS), SERVICE_STOP),
    (re.compile(_CMD + r"systemctl\s+(?:halt|poweroff|reboot)\b", _FLAGS), HOST_SHUTDOWN),
    (re.compile(_CMD + r"(?:shutdown|reboot|halt|poweroff)" + _END, _FLAGS), HOST_SHUTDOWN),
    (re.compile(_CMD + r"(?:telinit|init)\s+[06]" + _END, _FLAGS), HOST_SHUTDOWN),
    (
        re.compile(
            _CMD + r"rm\s+(?:-{1,2}[\w-]+\s+)*(?:-[a-zA-Z]*[rR][a-zA-Z]*|--recursive)\s+(?:-{1,2}[\w-]+\s+)*[\x27\x22]?/\*?[\x27\x22]?" + _END,
            _FLAGS,
        ),
        ROOT_DELETION,
    ),
]


def referenced_names(statement: str) -> Set[str]:
    """Lower-cased words of a statement outside string literals and comments.

    Every table reference shows up here whatever its shape: comma joins,
    `schema.table`, quoted or bracketed names.
    """
    try:
        tokens = sqlglot.tokenize(statement, read="sqlite")
    except SqlglotError:
        # untokenizable input, so every word counts
        return {w.lower() for w in re.findall(_IDENT, statement)}
    return {t.text.lower() for t in tokens if t.token_type != TokenType.STRING}


class GuardrailPolicy:
    """Rule set deciding whether a proposed SQL statement or command may run."""

    def __init__(self, restricted_tables: Optional[Iterable[str]] = None):
        tables = list(restricted_tables) if restricted_tables is not None else ["SecurityAnswers"]
        self.restricted_tables = tables
        self._restricted = {t.lower() for t in tables}

    def evaluate(self, statement: str, domain: Domain) -> GuardrailVerdict:
        if domain == Domain.SQL:
            return self.evaluate_sql(statement)
        if domain == Domain.SHELL:
            return self.evaluate_shell(statement)
        raise ValueError(f"unknown guardrail domain: {domain!r}")

    def evaluate_sql(self, statement: str) -> GuardrailVerdict:
        statement = statement or ""
        for pattern, reason in DENIED_SQL_PATTERNS:
            if pattern.search(statement):
                return GuardrailVerdict.deny(reason)
        if self._restricted & referenced_names(statement):
            return GuardrailVerdict.deny(RESTRICTED_TABLE)
        if not any(p.search(statement) for p in ALLOWED_SQL_PATTERNS):
            return GuardrailVerdict.deny(STATEMENT_NOT_ALLOWED)
        return GuardrailVerdict.allow()

    def evaluate_shell(self, command: str) -> GuardrailVerdict:
        command = (command or "").strip()
        for pattern, reason in DENIED_SHELL_PATTERNS:
            if pattern.search(command):
                return GuardrailVerdict.deny(reason)
        return GuardrailVerdict.allow()


def describe(reason: Optional[str]) -> str:
    return REASON_DESCRIPTIONS.get(reason or "", "it is not permitted")
