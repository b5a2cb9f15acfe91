"""mockpay command line.

Server lifecycle (serve/start/stop/status), scenario scripting (pay, error,
webhook) and maintenance (reset, logs). Commands that change state write to
the data directory of the running servers, as recorded in
``.mockpay/runtime.json``, so they take effect on the next request without
going through HTTP.
"""

import argparse
import asyncio
import json
import os
import signal
import subprocess
import sys
from datetime import datetime
from typing import Optional

import httpx

from mockpay import __version__
from mockpay.runtime import clear_runtime, is_pid_running, read_runtime, write_runtime
from mockpay.services import Services
from mockpay.services.control import parse_fault, parse_outcome
from mockpay.shared.config import MockpayConfig, load_config

HEALTH_TIMEOUT_S = 1.5


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number, got {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def runtime_config() -> MockpayConfig:
    """Config from the environment, pointed at the running servers' data dir."""
    env = dict(os.environ)
    runtime = read_runtime()
    if runtime and runtime.get("data_dir"):
        env["MOCKPAY_DATA_DIR"] = runtime["data_dir"]
    return load_config(env)


# === Lifecycle ===

def cmd_serve(args) -> int:
    from mockpay.main import run

    run(load_config())
    return 0


def cmd_start(args) -> int:
    runtime = read_runtime()
    if runtime and is_pid_running(runtime["pid"]):
        print(f"Mockpay already running (pid {runtime['pid']})")
        return 0

    config = load_config()
    os.makedirs(config.data_dir, exist_ok=True)
    log_path = os.path.join(os.path.dirname(config.data_dir), "server.log")
    with open(log_path, "ab") as log_file:
        child = subprocess.Popen(
            [sys.executable, "-m", "mockpay", "serve"],
            stdout=log_file,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            start_new_session=True,
            env={**os.environ, "MOCKPAY_DATA_DIR": config.data_dir},
        )
    write_runtime(child.pid, config.data_dir)
    print(f"Mockpay started (pid {child.pid})")
    print(f"Paystack:    http://{config.host}:{config.paystack_port}")
    print(f"Flutterwave: http://{config.host}:{config.flutterwave_port}")
    return 0


def cmd_stop(args) -> int:
    runtime = read_runtime()
    if runtime and is_pid_running(runtime["pid"]):
        try:
            os.kill(runtime["pid"], signal.SIGTERM)
        except OSError as e:
            print(f"Failed to stop mockpay: {e}")
            return 1
        clear_runtime()
        print("Mockpay stopped")
        return 0

    print("Mockpay is not running")
    clear_runtime()
    return 0


def cmd_status(args) -> int:
    config = runtime_config()
    targets = [
        ("Paystack", f"http://{config.host}:{config.paystack_port}/__health"),
        ("Flutterwave", f"http://{config.host}:{config.flutterwave_port}/__health"),
    ]
    running = []
    for name, url in targets:
        try:
            resp = httpx.get(url, timeout=HEALTH_TIMEOUT_S)
        except httpx.HTTPError:
            continue
        if resp.is_success:
            running.append(name)

    if not running:
        print("Not running")
        return 1
    for name in running:
        print(f"{name} running")
    return 0


# === Scenario scripting ===

def cmd_pay(args) -> int:
    services = Services(runtime_config())
    outcome = services.control.set_next_outcome(parse_outcome(args.result))
    print(f"Next payment result set to {outcome.value}")
    return 0


def cmd_error(args) -> int:
    services = Services(runtime_config())
    services.control.set_next_fault(parse_fault(args.type))
    print(f"Next error set to {args.type}")
    return 0


def cmd_webhook_resend(args) -> int:
    services = Services(runtime_config())
    if asyncio.run(services.webhooks.resend_last_webhook()):
        print("Webhook resent")
    else:
        print("No webhook to resend")
    return 0


def cmd_webhook_config(args) -> int:
    services = Services(runtime_config())
    update = {
        "delay_ms": args.delay,
        "retry_count": args.retry,
        "retry_delay_ms": args.retry_delay,
        "duplicate": args.duplicate,
        "drop": args.drop,
    }
    update = {k: v for k, v in update.items() if v is not None}
    if update:
        policy = services.control.set_webhook_config(update)
        print("Webhook config updated")
    else:
        policy = services.control.get_webhook_config()
    print(json.dumps(policy.model_dump(), indent=2))
    return 0


# === Maintenance ===

def cmd_reset(args) -> int:
    Services(runtime_config()).control.reset_all()
    print("Database cleared")
    return 0


def format_log_entry(entry: dict) -> str:
    time_str = datetime.fromtimestamp(entry.get("timestamp", 0) / 1000).strftime("%H:%M:%S")
    prefix = f"[{entry['source']}] " if entry.get("source") else ""
    return f"{time_str} {prefix}{entry.get('message', '')}"


def cmd_logs(args) -> int:
    config = runtime_config()
    url = f"http://{config.host}:{config.paystack_port}/__logs"
    print(f"Streaming logs from {url}")
    try:
        with httpx.stream(
            "GET", url,
            params={"history": args.history},
            headers={"Accept": "text/event-stream"},
            timeout=None,
        ) as resp:
            for line in resp.iter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    entry = json.loads(line[len("data:"):].strip())
                except ValueError:
                    continue
                print(format_log_entry(entry), flush=True)
    except httpx.HTTPError:
        print("Unable to connect to log stream. Is mockpay running?")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mockpay",
        description="Local Paystack + Flutterwave mock servers",
    )
    p.add_argument("--version", action="version", version=f"mockpay {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run both mock servers in the foreground").set_defaults(func=cmd_serve)
    sub.add_parser("start", help="Start mock servers in the background").set_defaults(func=cmd_start)
    sub.add_parser("stop", help="Stop background mock servers").set_defaults(func=cmd_stop)
    sub.add_parser("status", help="Show running services").set_defaults(func=cmd_status)

    pay = sub.add_parser("pay", help="Set next payment result")
    pay.add_argument("result", choices=["success", "fail", "cancel"])
    pay.set_defaults(func=cmd_pay)

    error = sub.add_parser("error", help="Simulate next request failure")
    error.add_argument("type", choices=["500", "timeout", "network"])
    error.set_defaults(func=cmd_error)

    webhook = sub.add_parser("webhook", help="Webhook actions")
    webhook_sub = webhook.add_subparsers(dest="webhook_command", required=True)
    webhook_sub.add_parser("resend", help="Resend last webhook").set_defaults(func=cmd_webhook_resend)

    config = webhook_sub.add_parser("config", help="View or update webhook behaviour")
    config.add_argument("--delay", type=_non_negative_int, default=None,
                        help="Delay before each attempt (ms)")
    config.add_argument("--retry", type=_non_negative_int, default=None,
                        help="Retries after a failed first attempt")
    config.add_argument("--retry-delay", dest="retry_delay", type=_non_negative_int, default=None,
                        help="Delay before each retry (ms)")
    config.add_argument("--duplicate", dest="duplicate", action="store_true", default=None,
                        help="Send every webhook twice")
    config.add_argument("--no-duplicate", dest="duplicate", action="store_false", default=None)
    config.add_argument("--drop", dest="drop", action="store_true", default=None,
                        help="Record webhooks as dropped without sending")
    config.add_argument("--no-drop", dest="drop", action="store_false", default=None)
    config.set_defaults(func=cmd_webhook_config)

    sub.add_parser("reset", help="Clear all mock data").set_defaults(func=cmd_reset)

    logs = sub.add_parser("logs", help="Stream live logs")
    logs.add_argument("--history", type=_non_negative_int, default=0,
                      help="Replay this many persisted entries first")
    logs.set_defaults(func=cmd_logs)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)
