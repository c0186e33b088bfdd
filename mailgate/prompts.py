# mailgate/prompts.py
"""
Named system prompts: active-prompt resolution plus create/read/update.

Resolution policy: among active rows with the requested name, the one touched
most recently (updated_at, falling back to created_at) wins, ties broken by the
highest id. When nothing matches, the built-in template is returned so email
processing keeps working on an empty or misconfigured store.
"""

import enum
import threading
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func

from mailgate import monitoring
from mailgate.db import Database, utcnow
from mailgate.models import Prompt

EMAIL_RESPONSE_PROMPT = "email_response"

DEFAULT_PROMPT_CONTENT = """Write the reply email to a customer of our internet service, making sure the message is
warm, clear and assertive. The tone must convey empathy and professionalism and leave the customer with a
positive experience. Always write in the first person, so the reply reads as coming from an agent who is
willing to help. Always include the standard company signature in the expected format.

Guidelines for the reply:
Clarity and objectivity: the message must be easy to understand and direct, avoiding unnecessary technical terms.
Welcoming tone: use friendly, courteous language that shows empathy for the customer's request.
Assertiveness: give precise, direct information and avoid ambiguity.
Positive reinforcement: whenever possible, reinforce the company's commitment to customer satisfaction.
Acknowledgement: take extra care with emails that mention 'delay', 'technician did not show up' or 'problems'.
Constructive closing: end by offering further support and stating next steps, when applicable.

Expected reply format:
Keep the reply in the first person
Acknowledge the customer's request
Explain the answer clearly and objectively
Offer a solution or the appropriate next step
Close cordially and offer further support
Do not use icons or emojis in the email.
At the end of every email, add the standard signature in this format: 'Our support channels are:
our website, our support email address and our customer service phone line (Monday to Saturday, 8am to 8pm).'"""

# name check + insert in create() must not interleave within this process
_CREATE_LOCK = threading.Lock()


class PromptErrorKind(str, enum.Enum):
    DUPLICATE_NAME = "duplicate_name"
    NOT_FOUND = "not_found"


@dataclass
class PromptResult:
    prompt: Optional[Prompt] = None
    error: Optional[PromptErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, prompt: Prompt) -> "PromptResult":
        return cls(prompt=prompt)

    @classmethod
    def failure(cls, error: PromptErrorKind, message: str) -> "PromptResult":
        return cls(error=error, message=message)


class PromptResolver:
    def __init__(self, database: Database):
        self.database = database

    def resolve_active_content(self, name: str) -> str:
        recency = func.coalesce(Prompt.updated_at, Prompt.created_at)
        with self.database.session() as db:
            row = (
                db.query(Prompt.content)
                .filter(Prompt.name == name, Prompt.is_active.is_(True))
                .order_by(recency.desc(), Prompt.id.desc())
                .first()
            )
        if row is None:
            monitoring.logger.warning("Prompt not found, using built-in template", extra={"prompt_name": name})
            monitoring.inc_prompt_fallback(name)
            return DEFAULT_PROMPT_CONTENT
        return row.content

    def list_prompts(self) -> List[Prompt]:
        with self.database.session() as db:
            return (
                db.query(Prompt)
                .order_by(Prompt.created_at.desc(), Prompt.id.desc())
                .all()
            )

    def get_prompt(self, prompt_id: int) -> Optional[Prompt]:
        with self.database.session() as db:
            return db.get(Prompt, prompt_id)

    def create(self, name: str, content: str, is_active: bool = True) -> PromptResult:
        with _CREATE_LOCK, self.database.session() as db:
            existing = db.query(Prompt.id).filter(Prompt.name == name).first()
            if existing is not None:
                return PromptResult.failure(
                    PromptErrorKind.DUPLICATE_NAME,
                    f"A prompt named '{name}' already exists",
                )
            prompt = Prompt(name=name, content=content, is_active=is_active, created_at=utcnow())
            db.add(prompt)
            db.flush()
            db.refresh(prompt)
        monitoring.logger.info("Prompt created", extra={"prompt_id": prompt.id, "prompt_name": name})
        return PromptResult.success(prompt)

    def update(self, prompt_id: int, name: str, content: str, is_active: bool) -> PromptResult:
        # Name collisions with other rows are deliberately not checked here.
        with self.database.session() as db:
            prompt = db.get(Prompt, prompt_id)
            if prompt is None:
                return PromptResult.failure(
                    PromptErrorKind.NOT_FOUND,
                    f"Prompt with id {prompt_id} not found",
                )
            prompt.name = name
            prompt.content = content
            prompt.is_active = is_active
            prompt.updated_at = utcnow()
            db.flush()
            db.refresh(prompt)
        monitoring.logger.info("Prompt updated", extra={"prompt_id": prompt_id, "prompt_name": name})
        return PromptResult.success(prompt)

    def ensure_seed_prompt(self) -> bool:
        """Create the email_response prompt if no row with that name exists. Returns True if created."""
        with _CREATE_LOCK, self.database.session() as db:
            existing = db.query(Prompt.id).filter(Prompt.name == EMAIL_RESPONSE_PROMPT).first()
            if existing is not None:
                return False
            db.add(Prompt(
                name=EMAIL_RESPONSE_PROMPT,
                content=DEFAULT_PROMPT_CONTENT,
                is_active=True,
                created_at=utcnow(),
            ))
        monitoring.logger.info("Default prompt created", extra={"prompt_name": EMAIL_RESPONSE_PROMPT})
        return True
