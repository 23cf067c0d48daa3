#!/usr/bin/env python3
"""Interactive chat CLI for trying the golf chat service from a terminal."""

import json
import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Interactive client for the streaming chat endpoint."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.conversation_id: str | None = None
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(120.0, connect=5.0))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold green]⛳ PlayGolfSpainNow - Interactive Chat[/bold green]\n"
                "Type your messages to chat with the golf assistant.\n"
                "Commands: /help, /status, /clear, /quit",
                border_style="green",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to golf chat service[/green]")
        self._show_status()

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/status":
                    self._show_status()
                    continue
                elif user_input.lower() == "/clear":
                    self.conversation_id = None
                    self.console.print("[yellow]🔄 Started a new conversation[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                reply = self._send_message(user_input)
                if reply:
                    self._display_response(reply)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> str | None:
        """Send a message and echo the streamed reply as it arrives."""
        payload = {"content": message}
        if self.conversation_id:
            payload["conversationId"] = self.conversation_id

        reply = ""
        try:
            with self.client.stream("POST", f"{self.base_url}/api/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return None

                for line in response.iter_lines():
                    if not line.startswith("data: "):
                        continue
                    event = json.loads(line[len("data: ") :])

                    if "content" in event:
                        reply += event["content"]
                        self.console.print(event["content"], end="", markup=False, highlight=False)
                    elif "status" in event:
                        self.console.print(f"\n[dim]🔎 {event['message']}[/dim]")
                    elif "error" in event:
                        self.console.print(f"\n[red]❌ {event['error']}[/red]")
                        return None
                    elif event.get("done"):
                        self.conversation_id = event.get("conversationId", self.conversation_id)
                        break

        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return None

        self.console.print()
        return reply

    def _display_response(self, reply: str) -> None:
        """Re-render the finished reply as markdown."""
        self.console.print(
            Panel(
                Markdown(reply),
                title="[bold green]⛳ Golf Assistant[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )

    def _show_status(self) -> None:
        """Show which providers the service has configured."""
        try:
            data = self.client.get(f"{self.base_url}/api/chat/status").json()
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Could not fetch status: {e}[/red]")
            return

        providers = ", ".join(name for name, enabled in data["providers"].items() if enabled) or "none"
        capabilities = ", ".join(name for name, enabled in data["capabilities"].items() if enabled) or "none"
        self.console.print(
            Panel(
                f"[bold]Providers:[/bold] {providers}\n[bold]Capabilities:[/bold] {capabilities}",
                title="[yellow]📋 Service Status[/yellow]",
                border_style="yellow",
            )
        )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /status - Show configured AI providers
• /clear - Start a new conversation
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "Show me courses in Costa del Sol"
2. "What tee times does Valderrama have on 2026-11-20?"
3. "Book 08:30 for 2 players, name Alex Smith, email alex@example.com"

[bold]Tips:[/bold]
• Dates use YYYY-MM-DD, times use HH:MM
• Without GolfNow credentials the service books against mock courses
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
