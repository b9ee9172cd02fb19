# narrachat/app.py
from __future__ import annotations
import argparse, logging, platform, signal, sys
from pathlib import Path
from typing import Optional, TextIO

from PyQt6.QtCore import QCoreApplication, QEventLoop, QTimer

from .constants import APP_NAME, __version__
from .core.attachments import load_attachment
from .core.conversation import Conversation
from .core.errors import AttachmentError
from .core.session import StreamOutcome
from .core.transcript import ConversationTurn
from .infra.llm.http_client import ChatHttpClient
from .logging_config import init_logging
from .paths import default_data_dir, log_path, settings_path
from .settings import chat_config, load_settings
from .ui.chat_controller import ChatController


class ConsolePrinter:
    """Writes the growing tail of the newest assistant turn as it streams in."""

    def __init__(self, out: TextIO = sys.stdout):
        self.out = out
        self._written: dict[str, int] = {}

    def on_changed(self, turns: tuple[ConversationTurn, ...]) -> None:
        if not turns:
            return
        last = turns[-1]
        if last.role != "assistant":
            return
        done = self._written.get(last.id, 0)
        if done == 0 and last.kind == "error":
            self.out.write("\n")
        if len(last.content) > done:
            self.out.write(last.content[done:])
            self.out.flush()
            self._written[last.id] = len(last.content)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog=APP_NAME.lower(), description=f"{APP_NAME} streaming chat")
    p.add_argument("prompt", nargs="?", help="Send one message and exit (interactive when omitted)")
    p.add_argument("--attach", type=str, default=None, help="Portfolio CSV or XLSX to attach to the message")
    p.add_argument("--url", type=str, default=None, help="Chat endpoint (overrides settings)")
    p.add_argument("--suggestions", action="store_true", help="Print starter prompts and exit")

    # logging / paths
    p.add_argument("--data-dir", type=str, default=None, help="Override data directory")
    p.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING, ERROR")
    p.add_argument("--no-console-log", action="store_true", help="Disable console logging")
    return p.parse_args(argv)


def _send(ctl: ChatController, text: str, attach: Optional[str], out: TextIO) -> bool:
    attachment = None
    if attach:
        try:
            attachment = load_attachment(attach)
        except AttachmentError as exc:
            print(f"Cannot attach: {exc.message}", file=sys.stderr)
            return False

    outcomes: list[StreamOutcome] = []
    loop = QEventLoop()

    def _finished(outcome: StreamOutcome) -> None:
        outcomes.append(outcome)
        loop.quit()

    ctl.streamFinished.connect(_finished)
    # Python only runs signal handlers between bytecodes; the timer hands control back while Qt waits
    ticker = QTimer()
    ticker.timeout.connect(lambda: None)
    ticker.start(100)
    previous = signal.signal(signal.SIGINT, lambda *_: ctl.stop())
    try:
        if ctl.send(text, attachment):
            loop.exec()
    finally:
        signal.signal(signal.SIGINT, previous)
        ticker.stop()
        ctl.streamFinished.disconnect(_finished)
    out.write("\n")
    if not outcomes:
        return True
    outcome = outcomes[0]
    if not outcome.ok:
        logging.getLogger("chat").warning("Send failed: %s (%s)", outcome.message, outcome.reason)
    return outcome.ok


def run_interactive(ctl: ChatController, out: TextIO) -> int:
    while True:
        try:
            line = input("\n> ")
        except EOFError:
            out.write("\n")
            return 0
        cmd = line.strip()
        if cmd in ("exit", "quit"):
            return 0
        if cmd == "/new":
            ctl.reset()
            continue
        attach = None
        if cmd.startswith("/attach "):
            path, _, cmd = cmd[len("/attach "):].partition(" ")
            attach = path
        _send(ctl, cmd, attach, out)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    data_dir = Path(args.data_dir).expanduser().resolve() if args.data_dir else default_data_dir()
    log_file = log_path(data_dir)
    cfg_file = settings_path()
    cfg = load_settings(cfg_file)
    chat = chat_config(cfg, url=args.url)

    if args.suggestions:
        for s in chat.suggestions:
            print(s)
        return 0

    level = (args.log_level or cfg["logging"]["level"]).upper()
    init_logging(
        log_file,
        level=level,
        max_bytes=int(cfg["logging"]["max_bytes"]),
        backup_count=int(cfg["logging"]["backup_count"]),
        also_console=(not args.no_console_log),
    )
    log = logging.getLogger("boot")
    log.info("=== %s %s starting ===", APP_NAME, __version__)
    log.info("Platform: %s | Python: %s", platform.platform(), platform.python_version())
    log.info("Data dir: %s | Log file: %s", data_dir, log_file)
    log.info("Settings: %s", cfg_file)

    if not chat.url:
        print("No chat endpoint configured: pass --url or set chat.url / NARRACHAT_CHAT_URL", file=sys.stderr)
        return 2
    log.info("Chat endpoint: %s (credential %s)", chat.url, "set" if chat.api_key else "missing")

    client = ChatHttpClient(chat.url, api_key=chat.api_key, timeout=chat.timeout)
    qapp = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    convo = Conversation(client, greeting=chat.greeting, suggestions=chat.suggestions)
    ctl = ChatController(convo, parent=qapp)
    out = sys.stdout
    printer = ConsolePrinter(out)
    if chat.greeting:
        out.write(chat.greeting + "\n")
    # greeting already shown; only changes from now on are streamed
    convo.transcript.transcriptChanged.connect(printer.on_changed)

    if args.prompt or args.attach:
        return 0 if _send(ctl, args.prompt or "", args.attach, out) else 1
    return run_interactive(ctl, out)


if __name__ == "__main__":
    raise SystemExit(main())
