"""Zero-shot visual labels with CLIP via open_clip.

Scores an image against a fixed label vocabulary ("a photo of a beach", ...)
and keeps the labels whose softmax probability clears a threshold.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import torch
from PIL import Image, ImageOps

from config import (
    CLIP_MODEL,
    CLIP_PRETRAINED,
    LABEL_MIN_CONFIDENCE,
    LABEL_VOCABULARY,
    MAX_LABELS_PER_PHOTO,
)

logger = logging.getLogger(__name__)

# Allow large panoramas; images are downscaled right after opening
Image.MAX_IMAGE_PIXELS = None

CLASSIFY_SIZE = 384
PROMPT_TEMPLATE = "a photo of a {}"

_heif_registered = False


@dataclass
class Classification:
    labels: list[str] = field(default_factory=list)


def get_device() -> torch.device:
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def register_heif() -> None:
    """Register HEIF/HEIC opener with Pillow (idempotent)."""
    global _heif_registered
    if _heif_registered:
        return
    try:
        from pillow_heif import register_heif_opener

        register_heif_opener()
        _heif_registered = True
        logger.info("HEIF support registered")
    except ImportError:
        logger.warning("pillow-heif not installed; HEIF/HEIC files cannot be classified")


def open_for_classification(path: Path, size: int = CLASSIFY_SIZE) -> Image.Image:
    """Open, orient and downscale an image, releasing the file handle."""
    register_heif()
    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode != "RGB":
            img = img.convert("RGB")
        img.thumbnail((size, size), Image.LANCZOS)
        img.load()
    return img


def select_labels(
    probs: np.ndarray,
    vocabulary: list[str],
    min_confidence: float = LABEL_MIN_CONFIDENCE,
    max_labels: int = MAX_LABELS_PER_PHOTO,
) -> list[str]:
    """Labels with probability >= min_confidence, most likely first."""
    order = np.argsort(-probs, kind="stable")
    picked = []
    for idx in order[:max_labels]:
        if probs[idx] < min_confidence:
            break
        picked.append(vocabulary[idx])
    return picked


class ClipLabeler:
    def __init__(
        self,
        model_name: str = CLIP_MODEL,
        pretrained: str = CLIP_PRETRAINED,
        vocabulary: list[str] | None = None,
        min_confidence: float = LABEL_MIN_CONFIDENCE,
        max_labels: int = MAX_LABELS_PER_PHOTO,
    ):
        self._model_name = model_name
        self._pretrained = pretrained
        self._vocabulary = list(vocabulary or LABEL_VOCABULARY)
        self._min_confidence = min_confidence
        self._max_labels = max_labels
        self._model = None
        self._preprocess = None
        self._text_features = None
        self._device = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def load(self, device: torch.device | None = None) -> None:
        import open_clip

        self._device = device or get_device()
        logger.info("Loading %s (%s) on %s", self._model_name, self._pretrained, self._device)
        model, _, preprocess = open_clip.create_model_and_transforms(
            self._model_name, pretrained=self._pretrained or None
        )
        tokenizer = open_clip.get_tokenizer(self._model_name)
        model = model.to(self._device)
        model.eval()

        prompts = [PROMPT_TEMPLATE.format(label) for label in self._vocabulary]
        tokens = tokenizer(prompts).to(self._device)
        with torch.no_grad():
            text = model.encode_text(tokens)
            text /= text.norm(dim=-1, keepdim=True)

        self._model = model
        self._preprocess = preprocess
        self._text_features = text
        logger.info("Loaded %s with %d labels", self._model_name, len(self._vocabulary))

    def classify_image(self, image: Image.Image) -> Classification:
        if not self.loaded:
            self.load()
        tensor = self._preprocess(image).unsqueeze(0).to(self._device)
        with torch.no_grad():
            features = self._model.encode_image(tensor)
            features /= features.norm(dim=-1, keepdim=True)
            logits = 100.0 * features @ self._text_features.T
            probs = logits.softmax(dim=-1)[0].cpu().numpy()
        return Classification(
            labels=select_labels(probs, self._vocabulary, self._min_confidence, self._max_labels)
        )

    def classify(self, path: Path | str) -> Classification:
        """Labels for the image at path. Raises if the file cannot be read."""
        return self.classify_image(open_for_classification(Path(path)))
