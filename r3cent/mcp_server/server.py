"""
r3cent MCP Server.

Exposes the ask pipeline to MCP clients over stdio.

Expected MCP Tool Return Format:
{
    "ok": bool,
    "results": Any,          # Present if ok is True
    "error": str            # Present if ok is False
}
"""

import argparse
import logging
import os
import signal
from typing import Annotated, Any, Dict, Optional

from dotenv import load_dotenv
from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..common.config import ensure_directories, load_config
from ..common.item_store import SQLiteItemStore, StoreError
from ..common.session_ledger import SessionLedger, SessionNotFoundError
from ..retriever.pipeline import AskPipeline

logger = logging.getLogger("r3cent.mcp_server")


class AskMCPServerApp:
    """
    Main application class for the MCP server.

    Stdio servers run on the user's machine, so tools default to a single
    local user id unless one is passed explicitly.
    """
    def __init__(
            self,
            pipeline: AskPipeline,
            mcp_server_name: str = "r3cent_mcp_server",
            default_user_id: str = "local",
        ) -> None:
        """
        Args:
            pipeline (AskPipeline): Configured ask pipeline.
            mcp_server_name (str): The name of the MCP server.
            default_user_id (str): User id for calls that do not name one.
        """
        self.pipeline = pipeline
        self.default_user_id = default_user_id
        self.mcp = FastMCP(name=mcp_server_name)

        # ---------- MCP Tools: Ask ---------- #
        @self.mcp.tool(
            name="ask",
            description=(
                "Answer a question about the user's recent activity: voice thoughts, "
                "text notes, email, calendar events and music listening. "
                "Returns the answer, the items it cites, and suggested followup questions."
            ),
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_ask(
            query: Annotated[str, Field(description="natural language question (1-2000 characters)")],
            session_id: Annotated[Optional[str], Field(
                description="existing ask session to continue; a new session is created if omitted"
            )] = None,
            user_id: Annotated[Optional[str], Field(description="owner of the items (defaults to the local user)")] = None,
        ) -> Dict[str, Any]:
            """
            Run one query through the ask pipeline.

            Returns:
                Dict with ok flag and sessionId/answer/sources/followups under results.
            """
            if not query or not query.strip() or len(query) > 2000:
                return {"ok": False, "error": "query must be 1-2000 characters"}

            try:
                response = await self.pipeline.ask(
                    user_id=user_id or self.default_user_id,
                    query=query,
                    session_id=session_id,
                )
            except SessionNotFoundError:
                return {"ok": False, "error": f"Session not found: {session_id}"}
            except StoreError as e:
                return {"ok": False, "error": f"Item store unavailable: {e}"}

            return {"ok": True, "results": response.model_dump(mode="json", by_alias=True)}

        # ---------- MCP Tools: Sessions ---------- #
        @self.mcp.tool(
            name="list_ask_sessions",
            description="List the user's most recent ask sessions, newest first.",
            annotations=ToolAnnotations(readOnlyHint=True, destructiveHint=False)
        )
        async def tool_list_ask_sessions(
            user_id: Annotated[Optional[str], Field(description="owner of the sessions (defaults to the local user)")] = None,
            limit: Annotated[int, Field(description="maximum number of sessions (1-20)")] = 20,
        ) -> Dict[str, Any]:
            limit = max(1, min(limit, 20))
            sessions = self.pipeline.ledger.list_sessions(user_id or self.default_user_id, limit=limit)
            return {
                "ok": True,
                "results": [s.model_dump(mode="json") for s in sessions],
            }

    def run(self) -> None:
        """Runs the MCP server using stdio transport."""
        self.mcp.run(transport="stdio")


def main() -> None:
    """Entry point for the r3cent-mcp console script"""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Run the r3cent MCP server (stdio).")
    parser.add_argument(
        "--server-name",
        default=os.getenv("MCP_SERVER_NAME", "r3cent_mcp_server"),
        help="Advertised MCP server name.",
    )
    parser.add_argument(
        "--user-id",
        default=os.getenv("R3CENT_USER_ID", "local"),
        help="Default user id for tool calls.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    ensure_directories()
    config = load_config()

    item_store = SQLiteItemStore(config.store.db_path, timeout=config.store.timeout)
    ledger = SessionLedger(config.store.sessions_path)
    logger.info("Item store: %s", config.store.db_path)

    app = AskMCPServerApp(
        pipeline=AskPipeline.from_config(config, item_store=item_store, ledger=ledger),
        mcp_server_name=args.server_name,
        default_user_id=args.user_id,
    )

    def _handle_shutdown(signum, frame):
        raise SystemExit(0)
    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handle_shutdown)

    app.run()


if __name__ == "__main__":
    main()
