"""
Wire codec for the pet protocol.

One message per frame:

    ACTION|KEY1:VALUE1|KEY2:VALUE2|...

Parameters split at the first ``:`` so values may carry colons
(``message:Unknown action: JUMP``). ``|`` is reserved and may not appear in
keys or values.
"""
import math
from dataclasses import dataclass, field

from viscunam.errors import ProtocolError, UnknownAction
from viscunam.models.messages import (
    STATUS,
    UPDATE,
    Command,
    Event,
    SnapshotUpdate,
    StatusReply,
)
from viscunam.models.pet_state import Status

FIELD_SEP = "|"
KEY_SEP = ":"

_SNAPSHOT_KEYS = ("hunger", "happiness", "sleepiness", "status")
_STATUS_KEYS = ("code", "message", "action")


@dataclass(frozen=True)
class Message:
    action: str
    params: dict[str, str] = field(default_factory=dict)


def build_message(action: str, params: dict[str, object] | None = None) -> str:
    if not action or FIELD_SEP in action:
        raise ProtocolError(f"Invalid action: {action!r}")

    parts = [action]
    for key, value in (params or {}).items():
        text = str(value)
        if not key or FIELD_SEP in key or KEY_SEP in key:
            raise ProtocolError(f"Invalid key: {key!r}")
        if FIELD_SEP in text:
            raise ProtocolError(f"Value for {key!r} contains {FIELD_SEP!r}")
        parts.append(f"{key}{KEY_SEP}{text}")
    return FIELD_SEP.join(parts)


def parse_content(raw: str | bytes) -> Message:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError("Message is not valid UTF-8") from e

    text = raw.strip()
    if not text:
        raise ProtocolError("Empty message")

    action, *fields = text.split(FIELD_SEP)
    if not action:
        raise ProtocolError("Missing action")

    params: dict[str, str] = {}
    for part in fields:
        key, sep, value = part.partition(KEY_SEP)
        if not sep:
            raise ProtocolError(f"Missing '{KEY_SEP}' in parameter {part!r}")
        if not key:
            raise ProtocolError(f"Empty key in parameter {part!r}")
        if key in params:
            raise ProtocolError(f"Duplicate key {key!r}")
        params[key] = value
    return Message(action=action, params=params)


# --- client -> server -----------------------------------------------------


def encode_command(command: Command) -> str:
    return build_message(command.value)


def decode_command(raw: str | bytes) -> Command:
    msg = parse_content(raw)
    try:
        command = Command(msg.action)
    except ValueError:
        raise UnknownAction(msg.action) from None
    if msg.params:
        # commands carry no payload
        raise ProtocolError(
            f"Unexpected parameter(s) for {command.value}: {', '.join(msg.params)}"
        )
    return command


# --- server -> client -----------------------------------------------------


def encode_event(event: Event) -> str:
    if isinstance(event, SnapshotUpdate):
        return build_message(
            UPDATE,
            {
                "hunger": math.floor(event.hunger),
                "happiness": math.floor(event.happiness),
                "sleepiness": math.floor(event.sleepiness),
                "status": Status(event.status).value,
            },
        )
    if isinstance(event, StatusReply):
        params: dict[str, object] = {"code": event.code, "message": event.message}
        if event.action is not None:
            params["action"] = event.action.value
        return build_message(STATUS, params)
    raise TypeError(f"Not an event: {event!r}")


def _int_param(params: dict[str, str], key: str) -> int:
    try:
        return int(params[key])
    except KeyError:
        raise ProtocolError(f"Missing parameter {key!r}") from None
    except ValueError:
        raise ProtocolError(f"Parameter {key!r} is not an integer: {params[key]!r}") from None


def _check_keys(msg: Message, allowed: tuple[str, ...]) -> None:
    unknown = [k for k in msg.params if k not in allowed]
    if unknown:
        raise ProtocolError(f"Unknown key(s) for {msg.action}: {', '.join(unknown)}")


def decode_event(raw: str | bytes) -> Event:
    msg = parse_content(raw)

    if msg.action == UPDATE:
        _check_keys(msg, _SNAPSHOT_KEYS)
        token = msg.params.get("status")
        if token is None:
            raise ProtocolError("Missing parameter 'status'")
        try:
            status = Status(token)
        except ValueError:
            raise ProtocolError(f"Unknown status {token!r}") from None
        return SnapshotUpdate(
            hunger=_int_param(msg.params, "hunger"),
            happiness=_int_param(msg.params, "happiness"),
            sleepiness=_int_param(msg.params, "sleepiness"),
            status=status,
        )

    if msg.action == STATUS:
        _check_keys(msg, _STATUS_KEYS)
        if "message" not in msg.params:
            raise ProtocolError("Missing parameter 'message'")
        action = msg.params.get("action") or None
        try:
            command = Command(action) if action else None
        except ValueError:
            raise ProtocolError(f"Unknown echoed action {action!r}") from None
        return StatusReply(
            code=_int_param(msg.params, "code"),
            message=msg.params["message"],
            action=command,
        )

    raise UnknownAction(msg.action)
