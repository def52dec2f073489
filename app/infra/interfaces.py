from typing import Protocol, List, Optional, Any, Dict

from app.models.content import ContentVersion, ContentTranslation
from app.models.artifact import StoryPlan, StorySlide, StoryAudio, BrailleExport
from app.models.job import EnqueueRequest, Job, JobType
from app.infra.media_storage import SavedAsset


class ContentStore(Protocol):
    """Interface for canonical content versions and their translations."""

    def ensure_schema(self) -> None:
        """Ensures the necessary tables exist."""
        ...

    def get_canonical(self, content_key: str, version: int = 0) -> ContentVersion:
        """
        Returns the requested version (0 = latest).
        Raises NotFound when the key or the exact version is absent.
        """
        ...

    def put_version(self, content_key: str, payload: Any, canonical_locale: str) -> ContentVersion:
        """Stores a new canonical version unless the latest one already has the same hash."""
        ...

    def get_translation(self, content_key: str, version: int, locale: str) -> Optional[ContentTranslation]:
        ...

    def insert_translation(self, translation: ContentTranslation) -> bool:
        """Insert-if-absent. Returns True when a row was created."""
        ...


class ArtifactStore(Protocol):
    """Interface for derived story and braille artifacts. All inserts are insert-if-absent."""

    def ensure_schema(self) -> None:
        ...

    def get_story_plan(self, content_key: str, version: int, locale: str) -> Optional[StoryPlan]:
        ...

    def insert_story_plan(self, plan: StoryPlan) -> bool:
        ...

    def list_story_slides(self, content_key: str, version: int, locale: str) -> List[StorySlide]:
        """Slides ordered by slide_index."""
        ...

    def get_story_slide(self, content_key: str, version: int, locale: str, slide_index: int) -> Optional[StorySlide]:
        ...

    def insert_story_slide(self, slide: StorySlide) -> bool:
        ...

    def attach_slide_image(self, content_key: str, version: int, locale: str, slide_index: int,
                           image_path: str, image_mime: str, image_hash: str) -> bool:
        """Sets the image on a slide that has none. Returns False if one was already attached."""
        ...

    def list_story_audio(self, content_key: str, version: int, locale: str) -> List[StoryAudio]:
        ...

    def insert_story_audio(self, audio: StoryAudio) -> bool:
        ...

    def get_braille_export(self, content_key: str, version: int, locale: str, scope: str, format: str) -> Optional[BrailleExport]:
        ...

    def insert_braille_export(self, export: BrailleExport) -> bool:
        ...


class JobQueue(Protocol):
    """Interface for the idempotent job ledger."""

    def ensure_schema(self) -> None:
        ...

    def enqueue(self, request: EnqueueRequest) -> Job:
        """Returns the existing job for the idempotency key, or a newly queued one."""
        ...

    def claim(self, job_type: Optional[JobType] = None) -> Optional[Job]:
        """Atomically moves the oldest claimable job to running. None when nothing is available."""
        ...

    def ack(self, job_id: str, attempt: Optional[int] = None) -> None:
        """Marks a running job succeeded. With `attempt`, only if that claim is still current."""
        ...

    def fail(self, job_id: str, message: str, attempt: Optional[int] = None) -> None:
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        ...


class ContentGenerator(Protocol):
    """External AI collaborators. Implementations raise GenerationFailure."""

    provider: str
    model_name: str

    def translate(self, payload: Any, locale: str) -> Any:
        ...

    def plan_story(self, payload: Any, locale: str) -> Dict[str, Any]:
        """Returns {"style": str, "slides": [{"index", "caption", "imagePrompt", ...}]} with at most 8 slides."""
        ...

    def generate_image(self, prompt: str) -> bytes:
        """PNG bytes."""
        ...

    def synthesize_speech(self, text: str, locale: str) -> bytes:
        """WAV bytes."""
        ...


class MediaStorage(Protocol):
    """Binary asset storage; returns where the asset can be fetched from."""

    def save(self, data: bytes, key: str) -> SavedAsset:
        ...
