# mailgate/email_processor.py
import datetime
import enum
from dataclasses import dataclass
from typing import Optional

from mailgate import monitoring
from mailgate.db import Database
from mailgate.errors import LLMCommunicationError
from mailgate.llm_wrapper import LLMClient
from mailgate.prompts import EMAIL_RESPONSE_PROMPT, PromptResolver


class FailureKind(str, enum.Enum):
    LLM_UNAVAILABLE = "llm_unavailable"
    LLM_ERROR = "llm_error"
    LOG_FAILED = "log_failed"
    UNEXPECTED = "unexpected"


class EmailProcessingError(Exception):
    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass
class ProcessedEmail:
    response: str
    request_id: int
    processed_at: datetime.datetime


class EmailProcessor:
    """Resolves the reply prompt, asks the LLM for a reply and records the exchange."""

    def __init__(self, database: Database, prompts: PromptResolver, llm: LLMClient):
        self.database = database
        self.prompts = prompts
        self.llm = llm

    def _log_failure(self, message: str, error: str, client_info: Optional[str]):
        try:
            self.database.save_request_log(message, "", False, error, client_info)
        except Exception:
            # already logged by the recorder; the processing failure is what the caller sees
            monitoring.logger.error("Could not record failed email request",
                                    extra={"error_detail": error, "client_info": client_info})

    def process(self, message: str, client_info: Optional[str] = None) -> ProcessedEmail:
        monitoring.logger.info("Processing email",
                               extra={"client_info": client_info, "message_length": len(message or "")})
        try:
            system_prompt = self.prompts.resolve_active_content(EMAIL_RESPONSE_PROMPT)
            reply = self.llm.process_email(system_prompt, message)
        except LLMCommunicationError as e:
            monitoring.logger.error("LLM communication error",
                                    extra={"client_info": client_info, "status_code": e.status_code,
                                           "error_content": e.error_content})
            self._log_failure(message, f"LLMCommunicationError: {e} (status_code: {e.status_code})", client_info)
            if e.unavailable:
                raise EmailProcessingError(
                    FailureKind.LLM_UNAVAILABLE,
                    "The AI service is temporarily unavailable. Please try again later.",
                ) from e
            raise EmailProcessingError(FailureKind.LLM_ERROR,
                                       f"Error communicating with the AI service: {e}") from e
        except Exception as e:
            monitoring.logger.exception("Unexpected error processing email", extra={"client_info": client_info})
            self._log_failure(message, f"{type(e).__name__}: {e}", client_info)
            raise EmailProcessingError(
                FailureKind.UNEXPECTED,
                "Unexpected error processing your request. Please try again later.",
            ) from e

        try:
            entry = self.database.save_request_log(message, reply, True, None, client_info)
        except Exception as e:
            monitoring.logger.error("Email processed but request log failed",
                                    extra={"client_info": client_info, "reply_length": len(reply)})
            raise EmailProcessingError(
                FailureKind.LOG_FAILED,
                "Email processed, but the request could not be recorded.",
            ) from e

        monitoring.logger.info("Email processed",
                               extra={"request_id": entry["id"], "client_info": client_info})
        return ProcessedEmail(response=reply, request_id=entry["id"], processed_at=entry["created_at"])
