"""Image presence and (re)builds."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from ccal.engine import EngineClient
from ccal.errors import BuildError
from ccal.logger import logger


class ImageState(Enum):
    MISSING = "missing"
    PRESENT = "present"


class ImageBuilder:
    """Build the service image only when it is absent or a rebuild is forced.

    PRESENT is cached for the lifetime of the builder (one run), so repeated
    :meth:`ensure` calls cost nothing after the first.
    """

    def __init__(self, engine: EngineClient) -> None:
        self.engine = engine
        self.state: ImageState | None = None

    def inspect(self) -> ImageState:
        if self.state is ImageState.PRESENT:
            return self.state
        self.state = ImageState.PRESENT if self.engine.image_exists() else ImageState.MISSING
        return self.state

    def ensure(self, force_rebuild: bool = False, *, on_build: Callable[[], None] | None = None) -> bool:
        """Build if needed.  Returns True when a build ran.

        *on_build* is called just before a build starts.
        """
        if not force_rebuild and self.inspect() is ImageState.PRESENT:
            logger.debug("Image present, skipping build", image=self.engine.image)
            return False

        if on_build is not None:
            on_build()
        logger.info("Building image", image=self.engine.image, no_cache=force_rebuild)
        result = self.engine.build(no_cache=force_rebuild)
        if not result.ok:
            self.state = ImageState.MISSING
            raise BuildError(f"Image build failed (exit {result.exit_code})")
        self.state = ImageState.PRESENT
        return True
