"""
Leafwatch CLI - Main entry point.

Sends control commands to a running inspector and watches its results.
"""

import argparse
import sys
from typing import Any, Dict

from leafwatch_mqtt.schemas import ResultMessage

from .mqtt_client import MQTTCommandClient

# CLI subcommand → control plane command
SIMPLE_COMMANDS = {
    "enable-alert": "enable_alert",
    "disable-alert": "disable_alert",
    "toggle-alert": "toggle_alert",
    "status": "status",
    "stats": "stats",
}


def command_topic(service_id: str) -> str:
    return f"leafwatch/control/{service_id}/commands"


def status_topic(service_id: str) -> str:
    return f"leafwatch/control/{service_id}/status"


def result_topic(service_id: str) -> str:
    return f"leafwatch/data/results/{service_id}"


def build_command(name: str) -> Dict[str, Any]:
    """
    Build the JSON payload for a CLI subcommand.

    Raises:
        ValueError: If the subcommand has no control plane counterpart
    """
    if name not in SIMPLE_COMMANDS:
        raise ValueError(f"Unknown command: {name}")
    return {"command": SIMPLE_COMMANDS[name]}


def format_result(data: Dict[str, Any]) -> str:
    """One console line for a mirrored result."""
    msg = ResultMessage.from_dict(data)
    alert = "🔔" if msg.alert_enabled else "🔕"
    state = "ready" if msg.ready else "loading"
    return (
        f"[{msg.timestamp.value}] {msg.service_id} frame={msg.frame_id} "
        f"{msg.result_text} ({msg.confidence:.2f}) {alert} {state}"
    )


def _print_result(data: Dict[str, Any]) -> None:
    try:
        print(format_result(data))
    except ValueError as e:
        print(f"⚠️  Invalid result message: {e}")


def _print_status(data: Dict[str, Any]) -> None:
    print(f"📡 {data.get('status')}: {data.get('payload', {})}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Leafwatch CLI - Control a running inspector over MQTT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Alert toggle
  leafwatch-cli enable-alert
  leafwatch-cli disable-alert
  leafwatch-cli toggle-alert

  # Query state (reply arrives on the status topic)
  leafwatch-cli status --wait
  leafwatch-cli stats --wait

  # Follow mirrored results
  leafwatch-cli watch --count 10
"""
    )

    parser.add_argument(
        "--service-id",
        default="field_01",
        help="Target service ID (default: field_01)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    for name, help_text in (
        ("enable-alert", "Enable the audible alert"),
        ("disable-alert", "Disable the audible alert"),
        ("toggle-alert", "Flip the audible alert"),
        ("status", "Query inspection state"),
        ("stats", "Query pipeline statistics"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--wait",
            action="store_true",
            help="Print the next status message after sending"
        )

    watch = subparsers.add_parser('watch', help='Print mirrored results')
    watch.add_argument('--count', type=int, default=0, help='Stop after N results (default: forever)')
    watch.add_argument('--timeout', type=float, default=None, help='Stop after N seconds')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    client = MQTTCommandClient(broker=args.broker, port=args.port)

    try:
        if args.command == 'watch':
            client.collect(
                result_topic(args.service_id),
                _print_result,
                count=args.count,
                timeout=args.timeout,
            )
            return

        client.send_command(command_topic(args.service_id), build_command(args.command), qos=1)

        if args.wait:
            # Status is retained: subscribing yields the latest reply
            received = MQTTCommandClient(broker=args.broker, port=args.port).collect(
                status_topic(args.service_id),
                _print_status,
                count=1,
                timeout=3.0,
            )
            if received == 0:
                print("⚠️  No status received", file=sys.stderr)

    except KeyboardInterrupt:
        pass
    except (ConnectionError, TimeoutError, ValueError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
