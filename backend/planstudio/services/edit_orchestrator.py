"""Edit orchestrator: deep module for the upload and edit workflows.

Composes the version graph, the session history manager, the generation
oracle and the blob store. Ordering rules:

- nothing is written to the database until the blob store has accepted the
  new image, so a version never points at a missing artifact;
- an oracle or blob failure rolls the transaction back, leaving no version
  and no session change behind;
- if the blob was stored but the version write then fails, the blob is left
  orphaned and logged for an out-of-band sweep.
"""

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.angles import build_followup_suggestion, infer_angle, resolve_aspect_ratio
from ..core.config import DEFAULT_SYSTEM_PROMPT, Settings
from ..exceptions import (
    ConflictError,
    ImageNotFoundError,
    PlanStudioException,
    StorageFailureError,
    UpstreamFailureError,
    UpstreamIncompleteResponseError,
    ValidationError,
)
from ..models import ImageVersion, PromptSession
from ..schemas.edit import (
    CameraPreset,
    ChangelogEntry,
    EditRequest,
    EditResponse,
    FollowUp,
    MaskInput,
    PhotoResult,
    StructuredEditRequest,
    StructuredEditResponse,
    UploadResponse,
    VersioningSummary,
)
from ..schemas.session import Part, Turn
from ..schemas.version import VersionCreate, VersionMetadata
from .blob_store import BlobStore, StoredBlob
from .generation_client import GenerationOracle
from .session_service import DEFAULT_HISTORY_CAP, SessionService
from .version_graph import VersionGraph

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
UPLOAD_MODEL = "source"
UPLOAD_FOLLOWUP = "Would you like to request an initial render or annotate the floor plan?"
DEFAULT_DIFF_SUMMARY = "Updated render created."
BRANCHING_RULE = (
    "Preserve project context across turns and never overwrite previous versions; "
    "always branch new variations."
)
STYLE_LOCK_NOTE = "Keep the established style and materials; change only what this request asks for."


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrchestratorConfig:
    """Process-wide defaults, passed in rather than read from globals."""

    model_name: str = DEFAULT_MODEL
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    history_cap: int = DEFAULT_HISTORY_CAP
    id_factory: Callable[[], str] = field(default=_new_id)
    clock: Callable[[], datetime] = field(default=_utcnow)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OrchestratorConfig":
        return cls(
            model_name=settings.gemini_model,
            system_prompt=settings.system_prompt,
            history_cap=settings.history_cap,
        )


def build_system_instruction(system_prompt: str, design_intent: str, angle: Optional[str]) -> Turn:
    lines = [system_prompt]
    if design_intent:
        lines.append(f"Design intent: {design_intent}")
    if angle:
        lines.append(f"Focus on the {angle} angle unless directed otherwise.")
    lines.append(BRANCHING_RULE)
    return Turn(role="system", parts=[Part(text="\n".join(lines))])


def summarize_parts(parts: Sequence[Part]) -> str:
    """Join the non-blank text parts of a model reply."""
    return " ".join(p.text.strip() for p in parts if p.text and p.text.strip())


def render_angle_instruction(preset: CameraPreset, style_lock: bool) -> str:
    cam = preset.camera
    x, y, z = cam.pos
    instruction = (
        f"Render the {preset.id} view of this design from camera azimuth {cam.az:g}, "
        f"elevation {cam.elev:g}, field of view {cam.fov:g}, positioned at ({x:g}, {y:g}, {z:g})."
    )
    if style_lock:
        instruction = f"{instruction} {STYLE_LOCK_NOTE}"
    return instruction


def local_edit_instruction(instruction: str, style_lock: bool) -> str:
    text = f"{instruction.strip()} Apply the change locally; do not re-imagine the whole scene."
    if style_lock:
        text = f"{text} {STYLE_LOCK_NOTE}"
    return text


class EditOrchestrator:
    """Single entry point for uploads, conversational edits and structured op lists.

    Each public method owns its database transaction.
    """

    def __init__(
        self,
        db: Session,
        oracle: GenerationOracle,
        blob_store: BlobStore,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.db = db
        self.oracle = oracle
        self.blob_store = blob_store
        self.config = config or OrchestratorConfig()
        self.graph = VersionGraph(db, self.config.id_factory, self.config.clock)
        self.sessions = SessionService(
            db,
            self.config.id_factory,
            system_instruction=self.config.system_prompt,
            history_cap=self.config.history_cap,
        )

    # ----- upload ----------------------------------------------------------

    def upload(
        self,
        data: bytes,
        mime_type: str,
        design_intent: str = "",
        asset_type: str = "photo",
        aspect_ratio: Optional[str] = None,
    ) -> UploadResponse:
        """Seed a new session and a root version from uploaded bytes."""
        if not data:
            raise ValidationError("File field is required", field="file")

        try:
            session = self.sessions.create_session(design_intent)
            metadata = VersionMetadata(
                parent_id=None,
                intent_hash=session.intent_hash,
                timestamp=self.graph.creation_time(),
                source="upload",
                model=UPLOAD_MODEL,
                aspect_ratio=resolve_aspect_ratio(aspect_ratio),
                asset_type=asset_type,
                extensions={"edit_instruction": None, "session_id": session.id},
            )
            stored = self.blob_store.put(data, mime_type or "image/png", metadata.to_blob_metadata())
        except Exception:
            self.db.rollback()
            raise

        version = self._persist(
            stored,
            VersionCreate(
                parent_id=None,
                session_id=session.id,
                design_intent=session.design_intent,
                edit_instruction=None,
                image_id=stored.id,
                image_url=stored.public_url,
                metadata=_with_image_id(metadata, stored),
                diff_summary=None,
            ),
        )

        return UploadResponse(
            image_id=stored.id,
            version_id=version.id,
            session_id=session.id,
            public_url=stored.public_url,
            followup_suggestion=UPLOAD_FOLLOWUP,
        )

    # ----- conversational edit ---------------------------------------------

    def edit(self, request: EditRequest) -> EditResponse:
        """Run one edit turn and record its result as a child version.

        Raises:
            VersionNotFoundError / SessionNotFoundError: Unknown reference.
            MissingContextError: No version, session or design intent given.
            UpstreamFailureError / UpstreamIncompleteResponseError: Oracle or blob store failed.
            StorageFailureError / ConflictError: The final database write failed.
        """
        if request.client_request_id:
            prior = self.graph.find_replay(request.client_request_id)
            if prior is not None:
                logger.info(
                    "Replaying earlier result for client request",
                    extra={"client_request_id": request.client_request_id, "version_id": prior.id},
                )
                return self._response_for(prior, replayed=True)

        try:
            previous = (
                self.graph.get_version(request.previous_version_id)
                if request.previous_version_id
                else None
            )
            session = self.sessions.resolve_session(
                previous_version=previous,
                explicit_session_id=request.session_id,
                design_intent=request.base_prompt,
            )
            parent_id = previous.id if previous is not None else None
            aspect_ratio = resolve_aspect_ratio(
                request.aspect_ratio, previous.aspect_ratio if previous is not None else None
            )
            angle = infer_angle(request.edit_prompt, request.camera_hint)
            design_intent = (
                previous.design_intent
                if previous is not None and previous.design_intent is not None
                else session.design_intent
            )

            history = self.sessions.load_history(session)
            user_turn = Turn(
                role="user",
                parts=[Part(text=request.edit_prompt), *self._collect_inputs(request.image_ids, request.masks)],
            )
            system_turn = build_system_instruction(session.system_instruction, design_intent, angle)

            model_parts = self.oracle.generate(history + [user_turn], system_turn, aspect_ratio)
            image_part = next((p for p in model_parts if p.inline_data and p.inline_data.data), None)
            if image_part is None:
                logger.error("Generation response missing inline image", extra={"session_id": session.id})
                raise UpstreamIncompleteResponseError("Generation response missing inline image")
            image_bytes = _decode_image(image_part.inline_data.data)
            summary = summarize_parts(model_parts)

            extensions = {
                "edit_instruction": request.edit_prompt,
                "session_id": session.id,
                "previous_version_id": parent_id,
            }
            if request.client_request_id:
                extensions["client_request_id"] = request.client_request_id
            if summary:
                extensions["diff_summary"] = summary
            metadata = VersionMetadata(
                parent_id=parent_id,
                intent_hash=session.intent_hash,
                timestamp=self.graph.creation_time(previous),
                source="generation",
                model=self.config.model_name,
                angle_id=angle,
                aspect_ratio=aspect_ratio,
                input_image_ids=list(request.image_ids),
                extensions=extensions,
            )
            stored = self.blob_store.put(
                image_bytes, image_part.inline_data.mime_type, metadata.to_blob_metadata()
            )
        except Exception:
            self.db.rollback()
            raise

        version = self._persist(
            stored,
            VersionCreate(
                parent_id=parent_id,
                session_id=session.id,
                design_intent=design_intent,
                edit_instruction=request.edit_prompt,
                image_id=stored.id,
                image_url=stored.public_url,
                metadata=_with_image_id(metadata, stored),
                diff_summary=summary or None,
                client_request_id=request.client_request_id,
            ),
            session=session,
            turns=(user_turn, Turn(role="model", parts=model_parts)),
        )

        return EditResponse(
            new_image_id=stored.id,
            version_id=version.id,
            session_id=session.id,
            public_url=stored.public_url,
            diff_summary=summary or DEFAULT_DIFF_SUMMARY,
            followup_suggestion=build_followup_suggestion(angle, bool(summary)),
            angle_id=angle,
        )

    # ----- structured operations -------------------------------------------

    def apply_operations(self, request: StructuredEditRequest) -> StructuredEditResponse:
        """Apply a list of photo ops, each chained on the previous op's output.

        Floor plan ops are recorded as skipped. Ops with missing inputs,
        including a mask or source image the blob store does not have, are
        blocked and reported in ``follow_up``. The first upstream or storage
        failure stops the run and is recorded as ``failed``; ops that finished
        before it stay committed and are reported.
        """
        current = self.graph.get_version(request.current_version_id)
        ops = request.edit_request
        presets = {preset.id: preset for preset in request.angles}

        changelog: List[ChangelogEntry] = [
            ChangelogEntry(
                op=str(op.get("op", "unknown")),
                status="skipped",
                reason="Floor plan vector edits are not supported",
            )
            for op in ops.floor_plan_ops
        ]
        photos: List[PhotoResult] = []
        new_version_ids: List[str] = []
        missing: List[str] = []
        failure: Optional[str] = None

        for index, op in enumerate(ops.photo_ops):
            if op.op not in ("render_angle", "local_edit"):
                changelog.append(ChangelogEntry(op=op.op, status="skipped"))
                continue
            if not op.angle_id:
                changelog.append(ChangelogEntry(op=op.op, status="blocked", reason="Missing angle_id"))
                missing.append(f"photo_ops[{index}].angle_id")
                continue
            preset = presets.get(op.angle_id)
            if preset is None:
                changelog.append(ChangelogEntry(
                    op=op.op, status="blocked", angle_id=op.angle_id,
                    reason=f"Angle {op.angle_id} not found",
                ))
                missing.append(f"angles.{op.angle_id}")
                continue
            if op.op == "local_edit" and not (op.instruction and op.instruction.strip()):
                changelog.append(ChangelogEntry(
                    op=op.op, status="blocked", angle_id=op.angle_id, reason="Missing instruction",
                ))
                missing.append(f"photo_ops[{index}].instruction")
                continue

            if op.op == "render_angle":
                instruction = render_angle_instruction(preset, ops.style_lock)
                notes = f"Rendered angle {op.angle_id}"
            else:
                instruction = local_edit_instruction(op.instruction, ops.style_lock)
                notes = f"Applied local edit for {op.angle_id}"

            edit_request = EditRequest(
                image_ids=[current.image_id],
                edit_prompt=instruction,
                base_prompt=request.base_prompt,
                previous_version_id=current.id,
                camera_hint=op.angle_id,
                masks=[MaskInput(image_id=op.mask_image_id)] if op.mask_image_id else [],
                client_request_id=(
                    f"{request.client_request_id}:{index}" if request.client_request_id else None
                ),
            )
            try:
                result = self.edit(edit_request)
            except ImageNotFoundError as e:
                missing_id = e.details.get("image_id")
                field = (
                    f"photo_ops[{index}].mask_image_id"
                    if missing_id == op.mask_image_id
                    else f"images.{missing_id}"
                )
                changelog.append(ChangelogEntry(
                    op=op.op, status="blocked", angle_id=op.angle_id, reason=e.message,
                ))
                missing.append(field)
                continue
            except (
                UpstreamFailureError,
                UpstreamIncompleteResponseError,
                ConflictError,
                StorageFailureError,
            ) as e:
                logger.error(
                    f"Structured op {index} failed",
                    extra={"op": op.op, "angle_id": op.angle_id, "error_code": e.error_code.value},
                )
                changelog.append(ChangelogEntry(
                    op=op.op, status="failed", angle_id=op.angle_id, reason=e.message,
                ))
                failure = e.message
                break

            photos.append(PhotoResult(
                angle=op.angle_id,
                before_version_id=current.id,
                after_version_id=result.version_id,
                before_image_id=current.image_id,
                after_image_id=result.new_image_id,
                public_url_after=result.public_url,
                notes=notes,
            ))
            new_version_ids.append(result.version_id)
            changelog.append(ChangelogEntry(op=op.op, status="done", angle_id=op.angle_id))
            current = self.graph.get_version(result.version_id)

        follow_up = FollowUp()
        if missing:
            follow_up = FollowUp(
                required=True,
                question=f"Please provide: {', '.join(missing)}",
                missing=missing,
            )
        elif failure:
            follow_up = FollowUp(
                required=True,
                question=f"Generation stopped early ({failure}). Retry the remaining operations?",
            )

        return StructuredEditResponse(
            photos=photos,
            versioning=VersioningSummary(
                parent_version_id=request.current_version_id,
                new_version_ids=new_version_ids,
                changelog=changelog,
            ),
            follow_up=follow_up,
        )

    # ----- internals -------------------------------------------------------

    def _collect_inputs(self, image_ids: Sequence[str], masks: Sequence[MaskInput]) -> List[Part]:
        """Fetch referenced images and masks as inline parts."""
        parts: List[Part] = []
        for image_id in image_ids:
            blob = self.blob_store.get(image_id)
            parts.append(Part.from_bytes_b64(base64.b64encode(blob.data).decode("ascii"), blob.mime_type))
        for mask in masks:
            if mask.data:
                parts.append(Part.from_bytes_b64(mask.data, mask.mime_type or "image/png"))
            elif mask.image_id:
                blob = self.blob_store.get(mask.image_id)
                parts.append(Part.from_bytes_b64(base64.b64encode(blob.data).decode("ascii"), blob.mime_type))
        return parts

    def _persist(
        self,
        stored: StoredBlob,
        create: VersionCreate,
        session: Optional[PromptSession] = None,
        turns: Sequence[Turn] = (),
    ) -> ImageVersion:
        """Write the version (and history) for an already-stored blob, then commit."""
        try:
            version = self.graph.create_version(create)
            if session is not None and turns:
                self.sessions.append_turns(session, *turns)
            self.db.commit()
        except (PlanStudioException, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error(
                "Stored image orphaned: version write failed",
                extra={"image_id": stored.id, "public_url": stored.public_url},
            )
            if isinstance(e, PlanStudioException):
                raise
            raise StorageFailureError("Failed to store version", original_error=e) from e
        return version

    def _response_for(self, version: ImageVersion, replayed: bool = False) -> EditResponse:
        return EditResponse(
            new_image_id=version.image_id,
            version_id=version.id,
            session_id=version.session_id,
            public_url=version.image_url,
            diff_summary=version.diff_summary or DEFAULT_DIFF_SUMMARY,
            followup_suggestion=build_followup_suggestion(version.angle_id, bool(version.diff_summary)),
            angle_id=version.angle_id,
            replayed=replayed,
        )


def _with_image_id(metadata: VersionMetadata, stored: StoredBlob) -> VersionMetadata:
    return metadata.model_copy(update={"extensions": {**metadata.extensions, "image_id": stored.id}})


def _decode_image(data: str) -> bytes:
    try:
        return base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise UpstreamIncompleteResponseError("Generation response carried an undecodable image") from e
