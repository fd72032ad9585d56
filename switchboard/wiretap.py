"""
Wiretap: a JSONL record of every message that crosses the switchboard.

WireLog subscribes to messageAdded and appends one line per message, keyed
on the message id. Assistant lines carry the routing outcome (provider,
model, retries, latency); error lines carry the exception class. live_tap()
replays and follows the file, grouped by conversation.
"""

import json
import logging
import time
from collections import deque
from pathlib import Path

from switchboard import events
from switchboard.events import EventBus

logger = logging.getLogger(__name__)

MAX_CONTENT = 2000

# Message metadata copied onto the wire, renamed for the log
ROUTING_KEYS = {
    "provider": "provider",
    "model": "model",
    "tokens": "tokens",
    "retries": "retries",
    "processing_time_ms": "ms",
    "error": "error",
}

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
TYPE_STYLE = {
    "user": ("\033[96m", "→"),
    "assistant": ("\033[93m", "←"),
    "system": ("\033[90m", "·"),
    "error": ("\033[91m", "✗"),
}


def clip(content: str, limit: int = MAX_CONTENT) -> str:
    """Keep the first and last half of anything longer than limit."""
    if len(content) <= limit:
        return content
    half = limit // 2
    return f"{content[:half]}\n[... {len(content) - limit} chars cut ...]\n{content[-half:]}"


class WireLog:
    """
    Appends one JSON object per message:

        {"id": "msg_...", "ts": "...", "conv": "conv_...", "title": "...",
         "type": "assistant", "chars": 412, "content": "...",
         "provider": "openai", "model": "gpt-4", "tokens": 33, "retries": 1, "ms": 812.4}
    """

    def __init__(self, log_path: str):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = None
        self._unsubscribe = None
        self._store = None

    def attach(self, bus: EventBus, store=None):
        """Record every messageAdded on the bus. The store, if given, supplies titles."""
        self._store = store
        self._unsubscribe = bus.subscribe(events.MESSAGE_ADDED, self._on_message_added)

    def _on_message_added(self, payload: dict, event: str):
        conversation_id = payload.get("conversation_id", "")
        title = ""
        if self._store is not None:
            conversation = self._store.get_conversation(conversation_id)
            title = conversation.title if conversation else ""
        self.record(payload["message"], conversation_id, title)

    def record(self, message, conversation_id: str = "", title: str = "") -> dict:
        entry = {
            "id": message.id,
            "ts": message.timestamp,
            "conv": conversation_id,
            "type": message.type,
            "chars": len(message.content),
            "content": clip(message.content),
        }
        if title:
            entry["title"] = title
        for key, wire_key in ROUTING_KEYS.items():
            if key in message.metadata:
                entry[wire_key] = message.metadata[key]

        if self._file is None:
            self._file = open(self.log_path, "a", encoding="utf-8", buffering=1)
        self._file.write(json.dumps(entry, ensure_ascii=False) + "\n")
        return entry

    def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._file:
            self._file.close()
            self._file = None


class TapRenderer:
    """Turns wire entries into terminal lines, with a header whenever the conversation changes."""

    def __init__(self, raw: bool = False, max_lines: int = 12):
        self.raw = raw
        self.max_lines = max_lines
        self._conv = None

    def render(self, entry: dict) -> str:
        if self.raw:
            return json.dumps(entry, ensure_ascii=False)

        out = []
        conv = entry.get("conv", "")
        if conv != self._conv:
            self._conv = conv
            label = entry.get("title") or "untitled"
            out.append(f"\n{BOLD}☎ {label}{RESET} {DIM}{conv}{RESET}")

        kind = entry.get("type", "?")
        color, arrow = TYPE_STYLE.get(kind, (RESET, "?"))
        clock = entry.get("ts", "")[11:19] or "--:--:--"
        out.append(f"  {DIM}{clock}{RESET} {color}{arrow} {kind}{RESET} {DIM}{self._details(entry)}{RESET}")

        body = entry.get("content", "").splitlines()
        out.extend(f"      {line}" for line in body[:self.max_lines])
        if len(body) > self.max_lines:
            out.append(f"      {DIM}(+{len(body) - self.max_lines} lines){RESET}")
        return "\n".join(out)

    @staticmethod
    def _details(entry: dict) -> str:
        if entry.get("type") == "error":
            return entry.get("error", "error")
        parts = []
        if entry.get("provider"):
            parts.append(f"{entry['provider']}/{entry.get('model', '?')}")
        if "ms" in entry:
            parts.append(f"{entry['ms']:.0f}ms")
        if entry.get("retries"):
            parts.append(f"{entry['retries']} retr{'y' if entry['retries'] == 1 else 'ies'}")
        if entry.get("tokens"):
            parts.append(f"{entry['tokens']} tok")
        parts.append(f"{entry.get('chars', 0)} chars")
        return " · ".join(parts)


def _entries(lines, type_filter: str | None):
    for line in lines:
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping unreadable wire line: %r", line[:80])
            continue
        if not isinstance(entry, dict):
            continue
        if type_filter and entry.get("type") != type_filter:
            continue
        yield entry


def _follow(f, poll: float = 0.2):
    """Yield lines appended to an open file, forever."""
    f.seek(0, 2)
    while True:
        line = f.readline()
        if line:
            yield line
        else:
            time.sleep(poll)


def live_tap(
    log_path: str | None = None,
    follow: bool = True,
    last_n: int = 20,
    role_filter: str | None = None,
    raw: bool = False,
):
    """
    Print the last N wire entries, then keep printing new ones until Ctrl+C.
    role_filter matches the message type (user, assistant, error).
    """
    if log_path is None:
        from switchboard.config import get_config
        log_path = get_config().get("wiretap", {}).get("path", "./data/wire.jsonl")

    wire_path = Path(log_path)
    if not wire_path.exists():
        print(f"  ✗  No wire log found at {wire_path}")
        print("     Enable wiretap in config.yaml and start Switchboard: switchboard dial")
        return

    renderer = TapRenderer(raw=raw)
    with open(wire_path, encoding="utf-8") as f:
        recent = deque(_entries(f, role_filter), maxlen=last_n) if last_n > 0 else ()
        for entry in recent:
            print(renderer.render(entry))

        if not follow:
            return
        try:
            for entry in _entries(_follow(f), role_filter):
                print(renderer.render(entry))
        except KeyboardInterrupt:
            if not raw:
                print(f"\n  {DIM}hung up{RESET}")
