"""
Deck importer: .pptx presentations and image sets -> List[Slide].

Only what the player can show is extracted from a .pptx: the text runs of
each slide, in shape order, and its pictures. The first run becomes the
title, the second the body, runs 3-6 the bullet points. A slide with fewer
than two runs and at least one picture is shown as a full-bleed image.
"""

import logging
import re
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, List, Optional, Union

from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.exc import PackageNotFoundError

from ...core.types import DeckImportError, Slide
from ..utils.logger import log_timing

logger = logging.getLogger(__name__)

_MAX_BULLETS = 4

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp", ".tif", ".tiff"}

PathLike = Union[str, Path]


def natural_sort_key(name: str):
    """'slide2' sorts before 'slide10'."""
    return [int(part) if part.isdigit() else part.lower()
            for part in re.split(r"(\d+)", name)]


def _walk_shapes(shapes):
    for shape in shapes:
        if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
            yield from _walk_shapes(shape.shapes)
        else:
            yield shape


def _shape_texts(shape) -> List[str]:
    if not shape.has_text_frame:
        return []
    return [run.text.strip()
            for paragraph in shape.text_frame.paragraphs
            for run in paragraph.runs
            if run.text and run.text.strip()]


def _extract_pictures(pptx_slide, number: int, media_root: Path) -> List[str]:
    refs = []
    for shape in _walk_shapes(pptx_slide.shapes):
        if shape.shape_type != MSO_SHAPE_TYPE.PICTURE:
            continue
        try:
            image = shape.image
        except (KeyError, ValueError) as e:
            # Linked (not embedded) pictures have no blob
            logger.warning("Image extraction error on slide %d: %s", number, e)
            continue
        out = media_root / f"slide{number}_image{len(refs) + 1}.{image.ext}"
        out.write_bytes(image.blob)
        refs.append(str(out))
    return refs


def import_pptx(path: PathLike, media_dir: Optional[PathLike] = None) -> List[Slide]:
    """Parse a .pptx file with python-pptx.

    Pictures are written to ``media_dir`` (a fresh temp dir by default) and
    referenced from Slide.image_refs by file path.

    Raises:
        DeckImportError: not a readable presentation, or no slide has content
    """
    path = Path(path)
    try:
        presentation = Presentation(str(path))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise DeckImportError(f"Cannot open {path.name}: {e}") from e

    media_root = Path(media_dir) if media_dir else Path(
        tempfile.mkdtemp(prefix="gesture_presenter_"))
    media_root.mkdir(parents=True, exist_ok=True)

    slides: List[Slide] = []
    for number, pptx_slide in enumerate(presentation.slides, start=1):
        texts = [text for shape in _walk_shapes(pptx_slide.shapes)
                 for text in _shape_texts(shape)]
        images = _extract_pictures(pptx_slide, number, media_root)

        if not texts and not images:
            continue

        slide_id = len(slides) + 1
        slides.append(Slide(
            id=slide_id,
            title=texts[0] if texts else f"Slide {slide_id}",
            content=texts[1] if len(texts) > 1 else "",
            image_refs=images,
            bullet_points=texts[2:2 + _MAX_BULLETS],
            is_image_only=len(texts) < 2 and len(images) > 0,
        ))

    if not slides:
        raise DeckImportError(f"No content found in {path.name}")
    logger.info("Imported %d slides from %s", len(slides), path.name)
    return slides


def import_images(paths: Iterable[PathLike]) -> List[Slide]:
    """One image-only slide per file, in natural filename order."""
    files = sorted((Path(p) for p in paths), key=lambda p: natural_sort_key(p.name))
    if not files:
        raise DeckImportError("No images given")
    return [
        Slide(
            id=i + 1,
            title=f.name.split(".")[0],
            image_refs=[str(f)],
            is_image_only=True,
        )
        for i, f in enumerate(files)
    ]


@log_timing
def import_deck(paths: Iterable[PathLike], media_dir: Optional[PathLike] = None) -> List[Slide]:
    """Import whatever the user picked.

    A .pptx (only the first path is used) is parsed as a presentation; a
    directory contributes its image files; anything else is an image.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise DeckImportError("No files given")

    first = paths[0]
    suffix = first.suffix.lower()
    if suffix == ".pptx":
        return import_pptx(first, media_dir)
    if suffix == ".ppt":
        raise DeckImportError(f"{first.name}: legacy .ppt files are not supported, save as .pptx")

    images = []
    for p in paths:
        if p.is_dir():
            images.extend(c for c in p.iterdir() if c.suffix.lower() in IMAGE_EXTENSIONS)
        else:
            images.append(p)
    return import_images(images)


def demo_deck() -> List[Slide]:
    """Built-in deck shown until the user loads one."""
    return [
        Slide(
            id=1,
            title="Gesture Presenter",
            content="Control your slides with hand gestures",
            bullet_points=[
                "Thumb up: next slide",
                "Thumb down: previous slide",
                "Open palm: pause / resume",
                "Victory / fist: volume up / down",
            ],
        ),
        Slide(
            id=2,
            title="Zoom and theme",
            content="Pointing up zooms in, I-love-you zooms out",
            bullet_points=[
                "Zoom wraps back to fit after 2.5x",
                "Press T to switch between dark and light",
                "Press M to mirror the camera preview",
            ],
        ),
        Slide(
            id=3,
            title="Load your own deck",
            content="gesture-presenter --deck talk.pptx",
            bullet_points=[
                "A folder of images works too",
                "Esc always resumes a paused presentation",
            ],
        ),
    ]
