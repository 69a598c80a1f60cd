#!/usr/bin/env python3
"""Interactive chat CLI for the streaming chat service."""

import json
import sys
import uuid
from typing import Any

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from codechat.utils.data_stream import PartType, parse_part


class ChatCLI:
    """Interactive chat interface that renders tool results as cards."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.conversation_id = str(uuid.uuid4())
        self.messages: list[dict[str, Any]] = []
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Codechat - Interactive Chat[/bold blue]\n"
                "Paste code and ask for an explanation, review, fix or tests.\n"
                "Commands: /help, /clear, /history, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]Cannot connect to the service at {self.base_url}.[/red]")
            return

        self._login()
        self.console.print("[green]Connected[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.conversation_id = str(uuid.uuid4())
                    self.messages = []
                    self.console.print("[yellow]Started a new conversation[/yellow]")
                    continue
                elif user_input.lower() == "/history":
                    self._show_history()
                    continue
                elif user_input.strip() == "":
                    continue

                self._send_message(user_input)

        except KeyboardInterrupt:
            pass
        finally:
            self.client.close()
            self.console.print("\n[blue]Goodbye![/blue]")

    def _test_connection(self) -> bool:
        try:
            return self.client.get(f"{self.base_url}/health").status_code == 200
        except httpx.HTTPError:
            return False

    def _login(self) -> None:
        response = self.client.post(f"{self.base_url}/auth/session", json={})
        response.raise_for_status()
        data = response.json()
        self.client.headers["Authorization"] = f"Bearer {data['token']}"
        self.console.print(f"[dim]Signed in as {data['user_id']}[/dim]")

    def _send_message(self, text: str) -> None:
        self.messages.append({"role": "user", "content": text})
        assistant_text = ""
        invocations: dict[str, dict[str, Any]] = {}

        self.console.print("\n[bold green]Assistant[/bold green]")
        try:
            with self.client.stream(
                "POST", f"{self.base_url}/chat", json={"id": self.conversation_id, "messages": self.messages}
            ) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]Error {response.status_code}: {response.text}[/red]")
                    self.messages.pop()
                    return

                for line in response.iter_lines():
                    if not line.strip():
                        continue
                    part = parse_part(line)
                    if part.type == PartType.TEXT:
                        assistant_text += part.value
                        self.console.print(part.value, end="")
                    elif part.type == PartType.TOOL_CALL:
                        invocations[part.value["toolCallId"]] = {**part.value, "state": "call"}
                        self.console.print(f"\n[dim]Calling {part.value['toolName']}...[/dim]")
                    elif part.type == PartType.TOOL_RESULT:
                        invocation = invocations.setdefault(part.value["toolCallId"], {})
                        invocation.update(state="result", result=part.value["result"])
                        self._render_tool_result(invocation)
                    elif part.type == PartType.ERROR:
                        self.console.print(f"\n[red]{part.value}[/red]")

        except httpx.HTTPError as e:
            self.console.print(f"[red]Request failed: {e}[/red]")
            return

        self.console.print()
        self.messages.append(
            {"role": "assistant", "content": assistant_text, "toolInvocations": list(invocations.values())}
        )

    def _render_tool_result(self, invocation: dict[str, Any]) -> None:
        result = invocation.get("result") or {}
        title = invocation.get("toolName", "tool")

        if "error" in result:
            self.console.print(Panel(str(result["error"]), title=f"{title} failed", border_style="red"))
            return

        if title == "review":
            table = Table(title=f"Code review - score {result.get('score')}/10")
            table.add_column("Category")
            table.add_column("Notes")
            for key in ("strengths", "improvements", "securityIssues", "performanceTips"):
                table.add_row(key, "\n".join(result.get(key, [])))
            self.console.print(table)
            return

        code = result.get("fixedCode") or result.get("code")
        if code:
            self.console.print(Panel(Syntax(code, "python", word_wrap=True), title=title, border_style="green"))
            return

        self.console.print(Panel(Markdown(f"```json\n{json.dumps(result, indent=2)}\n```"), title=title))

    def _show_history(self) -> None:
        response = self.client.get(f"{self.base_url}/history")
        if response.status_code != 200:
            self.console.print(f"[red]Error {response.status_code}[/red]")
            return
        table = Table(title="Conversations")
        table.add_column("ID")
        table.add_column("Created")
        table.add_column("Messages", justify="right")
        for conversation in response.json():
            table.add_row(conversation["id"], conversation["createdAt"], str(len(conversation["messages"])))
        self.console.print(table)

    def _show_help(self) -> None:
        self.console.print(
            Panel(
                "Ask things like:\n"
                "- Review this: def f(x): return x/0\n"
                "- Explain this python code: ...\n"
                "- Write tests for: ...\n\n"
                "/clear starts a new conversation, /history lists saved ones.",
                title="Help",
            )
        )


if __name__ == "__main__":
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    ChatCLI(base_url).start()
