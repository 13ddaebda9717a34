import json
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

import aiosqlite

from .agents import AssistantProfile


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def system_agent_id(name: str) -> str:
    return name.strip().lower().replace(" ", "-")


class Database:
    def __init__(self, path: str):
        self.path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(
                """
                PRAGMA journal_mode=WAL;
                CREATE TABLE IF NOT EXISTS projects(
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT,
                    created_at TEXT,
                    updated_at TEXT
                );
                CREATE TABLE IF NOT EXISTS threads(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    conversation_key TEXT NOT NULL,
                    thread_id TEXT NOT NULL,
                    created_at TEXT,
                    UNIQUE(user_id, conversation_key)
                );
                CREATE TABLE IF NOT EXISTS messages(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    project_id TEXT,
                    role TEXT,
                    content TEXT,
                    created_at TEXT
                );
                CREATE TABLE IF NOT EXISTS agents(
                    id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    name TEXT,
                    description TEXT,
                    model TEXT,
                    instructions TEXT,
                    is_system INTEGER DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY(user_id, id)
                );
                CREATE TABLE IF NOT EXISTS configs(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT,
                    payload_json TEXT
                );
                """
            )
            await db.commit()

    async def execute(self, query: str, params: Tuple[Any, ...] = ()) -> None:
        async with aiosqlite.connect(self.path) as db:
            await db.execute(query, params)
            await db.commit()

    async def fetchall(self, query: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
            return rows

    async def fetchone(self, query: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        rows = await self.fetchall(query, params)
        return rows[0] if rows else None

    async def save_config(self, payload: dict) -> None:
        await self.execute(
            "INSERT INTO configs(created_at, payload_json) VALUES (?,?)",
            (utc_now(), json.dumps(payload)),
        )

    # Conversation handles

    async def get_thread_id(self, user_id: str, conversation_key: str) -> Optional[str]:
        row = await self.fetchone(
            "SELECT thread_id FROM threads WHERE user_id=? AND conversation_key=?",
            (user_id, conversation_key),
        )
        return row["thread_id"] if row else None

    async def claim_thread(self, user_id: str, conversation_key: str, thread_id: str) -> str:
        """Create the handle if absent and return whichever thread id is stored."""
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                "INSERT OR IGNORE INTO threads(user_id, conversation_key, thread_id, created_at) VALUES (?,?,?,?)",
                (user_id, conversation_key, thread_id, utc_now()),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT thread_id FROM threads WHERE user_id=? AND conversation_key=?",
                (user_id, conversation_key),
            )
            row = await cursor.fetchone()
            await cursor.close()
        return row["thread_id"]

    # Projects and messages

    async def create_project(self, user_id: str, title: Optional[str] = None, project_id: Optional[str] = None) -> dict:
        pid = project_id or uuid.uuid4().hex
        created_at = utc_now()
        await self.execute(
            "INSERT INTO projects(id, user_id, title, created_at, updated_at) VALUES (?,?,?,?,?)",
            (pid, user_id, title or "New project", created_at, created_at),
        )
        return {
            "id": pid,
            "user_id": user_id,
            "title": title or "New project",
            "created_at": created_at,
            "updated_at": created_at,
        }

    async def get_project(self, user_id: str, project_id: str) -> Optional[dict]:
        row = await self.fetchone(
            "SELECT id, user_id, title, created_at, updated_at FROM projects WHERE user_id=? AND id=?",
            (user_id, project_id),
        )
        return dict(row) if row else None

    async def touch_project(self, user_id: str, project_id: str, updated_at: Optional[str] = None) -> str:
        stamp = updated_at or utc_now()
        await self.execute(
            "UPDATE projects SET updated_at=? WHERE user_id=? AND id=?",
            (stamp, user_id, project_id),
        )
        return stamp

    async def add_message(self, user_id: str, project_id: str, role: str, content: str) -> dict:
        created_at = utc_now()
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute(
                "INSERT INTO messages(user_id, project_id, role, content, created_at) VALUES (?,?,?,?,?)",
                (user_id, project_id, role, content, created_at),
            )
            await db.commit()
            message_id = cursor.lastrowid
        await self.touch_project(user_id, project_id, updated_at=created_at)
        return {"id": message_id, "role": role, "content": content, "created_at": created_at}

    async def list_messages(self, user_id: str, project_id: str, limit: int = 200) -> List[dict]:
        rows = await self.fetchall(
            "SELECT id, project_id, role, content, created_at FROM messages "
            "WHERE user_id=? AND project_id=? ORDER BY id ASC LIMIT ?",
            (user_id, project_id, limit),
        )
        return [dict(r) for r in rows]

    # Agents

    async def upsert_agent(
        self,
        user_id: str,
        agent_id: str,
        name: str,
        instructions: str,
        model: str,
        description: str = "",
        is_system: bool = False,
    ) -> dict:
        stamp = utc_now()
        await self.execute(
            "INSERT INTO agents(id, user_id, name, description, model, instructions, is_system, created_at, updated_at) "
            "VALUES (?,?,?,?,?,?,?,?,?) "
            "ON CONFLICT(user_id, id) DO UPDATE SET name=excluded.name, description=excluded.description, "
            "model=excluded.model, instructions=excluded.instructions, updated_at=excluded.updated_at",
            (agent_id, user_id, name, description, model, instructions, int(is_system), stamp, stamp),
        )
        return await self.get_agent(user_id, agent_id)

    async def get_agent(self, user_id: str, agent_id: str) -> Optional[dict]:
        row = await self.fetchone(
            "SELECT id, name, description, model, instructions, is_system FROM agents WHERE user_id=? AND id=?",
            (user_id, agent_id),
        )
        if not row:
            return None
        return {
            "id": row["id"],
            "name": row["name"],
            "description": row["description"],
            "model": row["model"],
            "instructions": row["instructions"],
            "is_system": bool(row["is_system"]),
        }

    async def seed_system_agents(self, user_id: str, profiles: Iterable[AssistantProfile]) -> None:
        for profile in profiles:
            agent_id = system_agent_id(profile.name)
            existing = await self.fetchone(
                "SELECT 1 FROM agents WHERE user_id=? AND id=?",
                (user_id, agent_id),
            )
            if existing:
                continue
            await self.upsert_agent(
                user_id,
                agent_id,
                name=profile.name,
                instructions=profile.instructions,
                model=profile.model,
                description=profile.description,
                is_system=True,
            )
