"""
In-memory design sessions.

A session owns one uploaded photo and everything derived from it: masks,
selections, custom materials, progress and the final image. Sessions share no
mutable state; each has a lock so that only one masking or editing operation
touches it at a time.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from core.config import settings
from core.exceptions import SessionAbandoned, SessionBusy, SessionNotFound
from schemas.design import MaskingStatus, StructuralElement
from services.custom_materials import CustomMaterialRegistry, PreviewStore
from services.edit_orchestrator import GenerationProgress
from services.image_codec import ImagePayload, TransportImage, image_dimensions
from services.mask_orchestrator import MASK_ORDER, MaskSet
from services.product_catalog import DesignSelection, ProductCatalog

logger = logging.getLogger(__name__)


@dataclass
class DesignSession:
    """State for one photo being redesigned"""

    session_id: str
    photo: ImagePayload
    width: int
    height: int
    catalog: ProductCatalog
    selection: DesignSelection
    previews: PreviewStore
    custom_materials: CustomMaterialRegistry
    mask_set: MaskSet = field(default_factory=MaskSet)
    masking_status: Dict[StructuralElement, MaskingStatus] = field(
        default_factory=lambda: {element: MaskingStatus.PENDING for element in MASK_ORDER}
    )
    mask_previews: Dict[StructuralElement, TransportImage] = field(default_factory=dict)
    progress: GenerationProgress = field(default_factory=GenerationProgress)
    result: Optional[TransportImage] = None
    closed: bool = False
    last_accessed: datetime = field(default_factory=datetime.now)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def on_mask_progress(
        self, element: StructuralElement, status: MaskingStatus, mask: Optional[TransportImage] = None
    ) -> None:
        """Progress sink for the mask orchestrator"""
        if self.closed:
            return
        self.masking_status[element] = status
        if mask is not None:
            self.mask_previews[element] = mask
        elif status in (MaskingStatus.GENERATING, MaskingStatus.ERROR):
            self.mask_previews.pop(element, None)

    def on_generation_progress(self, progress: GenerationProgress) -> None:
        """Progress sink for the edit orchestrator"""
        if not self.closed:
            self.progress = progress

    def checkpoint(self) -> None:
        """Stop a running operation once the session has been discarded"""
        if self.closed:
            raise SessionAbandoned(self.session_id)

    def close(self) -> None:
        self.closed = True
        self.custom_materials.release_all()
        released = self.previews.release_all()
        logger.info(f"[DesignSession] Closed {self.session_id[:8]}... ({released} preview(s) released)")


class DesignSessionStore:
    """Registry of live sessions"""

    def __init__(
        self,
        catalog: ProductCatalog,
        preview_url: Optional[Callable[[str, str], str]] = None,
        ttl_minutes: Optional[int] = None,
        max_sessions: Optional[int] = None,
    ):
        self.catalog = catalog
        self.preview_url = preview_url or (lambda session_id, handle: f"{session_id}/previews/{handle}")
        self.session_ttl = timedelta(minutes=settings.session_ttl_minutes if ttl_minutes is None else ttl_minutes)
        self.max_sessions = settings.max_sessions if max_sessions is None else max_sessions
        self._sessions: Dict[str, DesignSession] = {}
        logger.info(f"[DesignSession] Store initialized - Max sessions: {self.max_sessions}, TTL: {self.session_ttl}")

    def create(self, photo: ImagePayload) -> DesignSession:
        """
        Start a session for an uploaded photo with default selections.

        Raises:
            CodecError: the photo is not a decodable image
        """
        width, height = image_dimensions(photo.data)
        self.evict_expired()
        self._make_room()
        session_id = str(uuid.uuid4())
        catalog = self.catalog.copy()
        selection = catalog.default_selection()
        previews = PreviewStore()
        registry = CustomMaterialRegistry(
            catalog,
            selection,
            previews,
            preview_url=lambda handle: self.preview_url(session_id, handle),
        )
        session = DesignSession(
            session_id=session_id,
            photo=photo,
            width=width,
            height=height,
            catalog=catalog,
            selection=selection,
            previews=previews,
            custom_materials=registry,
        )
        self._sessions[session_id] = session
        logger.info(f"[DesignSession] Created {session_id[:8]}... for {width}x{height} {photo.mime_type} photo")
        return session

    def get(self, session_id: str) -> DesignSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if self._is_expired(session):
            logger.info(f"[DesignSession] Session {session_id[:8]}... expired")
            self.discard(session_id)
            raise SessionNotFound(session_id)
        session.last_accessed = datetime.now()
        return session

    def _is_expired(self, session: DesignSession, now: Optional[datetime] = None) -> bool:
        # A session with an operation in flight is never idle
        if session.lock.locked():
            return False
        return (now or datetime.now()) - session.last_accessed > self.session_ttl

    def evict_expired(self) -> int:
        """Discard sessions idle for longer than the TTL. Returns how many went."""
        now = datetime.now()
        expired = [sid for sid, session in self._sessions.items() if self._is_expired(session, now)]
        for session_id in expired:
            self.discard(session_id)
        if expired:
            logger.info(f"[DesignSession] Evicted {len(expired)} expired session(s)")
        return len(expired)

    def _make_room(self) -> None:
        """Drop least recently used idle sessions until one more fits."""
        idle = sorted(
            (session for session in self._sessions.values() if not session.lock.locked()),
            key=lambda session: session.last_accessed,
        )
        while len(self._sessions) >= self.max_sessions and idle:
            oldest = idle.pop(0)
            logger.warning(f"[DesignSession] Session limit reached, evicting {oldest.session_id[:8]}...")
            self.discard(oldest.session_id)

    def discard(self, session_id: str) -> bool:
        """Abandon a session; in-flight results for it are ignored"""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def discard_all(self) -> int:
        session_ids = list(self._sessions)
        for session_id in session_ids:
            self.discard(session_id)
        return len(session_ids)

    def is_active(self, session: DesignSession) -> bool:
        return self._sessions.get(session.session_id) is session

    @asynccontextmanager
    async def exclusive(self, session: DesignSession):
        """Hold the session for one operation; a second concurrent one is rejected"""
        if session.lock.locked():
            raise SessionBusy(session.session_id)
        async with session.lock:
            try:
                yield session
            finally:
                session.last_accessed = datetime.now()

    def __len__(self) -> int:
        return len(self._sessions)
