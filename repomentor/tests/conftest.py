"""Shared fakes for the RepoMentor test suite.

FakeGateway stands in for InferenceGateway: chat and completion replies are
scripted per test, embeddings are a deterministic bag-of-words hash so that
texts sharing words land close together.
"""

import hashlib
import re
from typing import Dict, List, Optional

import pytest
from llama_index.core.base.llms.types import (
    ChatMessage,
    ChatResponse,
    MessageRole,
    TextBlock,
    ToolCallBlock,
)

from repomentor.core.db import DatabaseManager
from repomentor.core.errors import UpstreamFailure
from repomentor.core.github import TreeEntry
from repomentor.core.session import SessionStore

EMBED_DIM = 256


def hash_embedding(text: str) -> List[float]:
    vector = [0.0] * EMBED_DIM
    for word in re.findall(r"\w+", text.lower()):
        vector[int(hashlib.sha1(word.encode()).hexdigest(), 16) % EMBED_DIM] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector


def text_reply(text: str) -> ChatResponse:
    return ChatResponse(message=ChatMessage(role=MessageRole.ASSISTANT, blocks=[TextBlock(text=text)]))


def tool_call_reply(name: str, kwargs: Dict, call_id: str = "call_1", text: str = "") -> ChatResponse:
    blocks = [TextBlock(text=text)] if text else []
    blocks.append(ToolCallBlock(tool_call_id=call_id, tool_name=name, tool_kwargs=kwargs))
    return ChatResponse(message=ChatMessage(role=MessageRole.ASSISTANT, blocks=blocks))


class FakeGateway:
    """Scripted stand-in for InferenceGateway.

    ``chat_replies`` and ``completions`` are consumed in order; an item that
    is an exception instance is raised instead of returned.
    """

    def __init__(self, chat_replies=None, completions=None, transcript: str = "hello"):
        self.chat_replies = list(chat_replies or [])
        self.completions = list(completions or [])
        self.transcript = transcript
        self.chat_calls: List[Dict] = []
        self.prompts: List[str] = []
        self.embedded: List[str] = []
        self.fail_embed_on: Optional[str] = None

    async def chat(self, messages, tools=None, purpose="general"):
        self.chat_calls.append({"messages": list(messages), "tools": tools, "purpose": purpose})
        if not self.chat_replies:
            return text_reply("What do you think happens next?")
        reply = self.chat_replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete(self, prompt, purpose="generator"):
        self.prompts.append(prompt)
        if not self.completions:
            raise UpstreamFailure("llm", "no scripted completion")
        reply = self.completions.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def embed(self, text):
        if self.fail_embed_on and self.fail_embed_on in text:
            raise UpstreamFailure("embedding", "rate limited")
        self.embedded.append(text)
        return hash_embedding(text)

    async def transcribe(self, audio):
        if isinstance(self.transcript, Exception):
            raise self.transcript
        return self.transcript

    def get_metrics(self):
        return {"total_calls": len(self.chat_calls) + len(self.prompts), "model": "fake"}


class FakeGitHub:
    """In-memory repository: ``files`` maps path to content."""

    def __init__(self, files: Dict[str, str], branch: str = "main"):
        self.files = dict(files)
        self.branch = branch
        self.failing_paths = set()
        self.fail_listing = False
        self.fetched: List[str] = []

    async def get_default_branch(self, repo):
        if self.fail_listing:
            raise UpstreamFailure("github", "GET /repos returned 404 Not Found")
        return self.branch

    async def get_tree(self, repo, branch):
        entries = [TreeEntry(path=p, type="blob", size=len(c)) for p, c in self.files.items()]
        dirs = {p.rsplit("/", 1)[0] for p in self.files if "/" in p}
        entries.extend(TreeEntry(path=d, type="tree") for d in sorted(dirs))
        return entries

    async def get_file_content(self, repo, path, ref=None):
        if path in self.failing_paths:
            raise UpstreamFailure("github", f"GET {path} returned 500")
        self.fetched.append(path)
        return self.files[path]


SAMPLE_REPO = {
    "README.md": "# Demo\n\nA demo service with authentication middleware.",
    "package.json": '{"name": "demo", "dependencies": {"express": "^4"}}',
    "src/index.ts": "import express from 'express'\nconst app = express()\napp.listen(3000)",
    "src/router.ts": "export function authenticate(req, res, next) {\n  // authentication middleware\n  next()\n}",
    "src/util/format.ts": "export const format = (s: string) => s.trim()",
    "tests/app.test.ts": "test('boots', () => {})",
    "assets/logo.png": "binary",
}


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_github():
    return FakeGitHub(SAMPLE_REPO)


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'repomentor.db'}")
    manager.create_tables()
    yield manager
    manager.dispose()


@pytest.fixture
def session_store(db_manager):
    return SessionStore(db_manager)
