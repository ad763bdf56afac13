"""
CommandRegistry - explicit registration of remote commands

Bounded Context: Command registration and validation
Responsibilities:
  - Map command names to handlers
  - Reject unknown commands with the list of known ones
  - Describe the registered commands (for status replies and the CLI)

Threading: register() takes a lock; lookups read a dict that is only
extended, never mutated in place.
"""

from typing import Any, Callable, Dict, Optional, Set
import threading

# Handlers receive the full JSON payload and may return a reply payload
CommandHandler = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


class CommandNotAvailableError(Exception):
    """Raised when attempting to execute an unregistered command"""
    pass


class CommandRegistry:
    """
    Registry of remote commands.

    Example:
        registry = CommandRegistry()
        registry.register("toggle_alert", service.handle_toggle_alert, "Flip the alert toggle")

        reply = registry.execute("toggle_alert", {"command": "toggle_alert"})
    """

    def __init__(self):
        self._commands: Dict[str, CommandHandler] = {}
        self._descriptions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(self, command: str, handler: CommandHandler, description: str) -> None:
        """
        Register a command.

        Raises:
            ValueError: If the name is empty, contains spaces, or is taken
        """
        if not command or command != command.strip().lower() or " " in command:
            raise ValueError(f"Invalid command name: '{command}'")

        with self._lock:
            if command in self._commands:
                raise ValueError(f"Command '{command}' already registered")

            self._commands[command] = handler
            self._descriptions[command] = description

    def execute(self, command: str, command_data: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Execute a registered command.

        Args:
            command: Command name
            command_data: Full JSON payload (default: {"command": command})

        Returns:
            The handler's reply payload, if any

        Raises:
            CommandNotAvailableError: If command not registered
        """
        handler = self._commands.get(command)
        if handler is None:
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {', '.join(sorted(self.available_commands))}"
            )

        return handler(command_data if command_data is not None else {"command": command})

    def is_available(self, command: str) -> bool:
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        """Command name → description (copy)."""
        return dict(self._descriptions)

    def __len__(self) -> int:
        return len(self._commands)
