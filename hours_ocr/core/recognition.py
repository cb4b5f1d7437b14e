"""
OCR recognition engines for opening-hours OCR.

Wraps PaddleOCR, EasyOCR and Tesseract and converts their output into
Observation objects (text, confidence, sub-range rectangles).
"""

import logging
from typing import List

import numpy as np

from .utils import BoundingBox, Language, Observation

logger = logging.getLogger(__name__)

# Engine tried next when an import fails
_FALLBACKS = {
    "paddle": "easyocr",
    "easyocr": "tesseract",
}

# Tesseract language codes differ from the ISO ones
_TESSERACT_LANGS = {
    Language.EN: "eng",
    Language.DE: "deu",
}


class OCREngine:
    """Wrapper for OCR engines (PaddleOCR, EasyOCR, Tesseract)."""

    def __init__(self, engine_name: str = "paddle", lang: str = "en"):
        self.engine_name = engine_name.lower()
        self.lang = Language(lang)
        self.engine = None
        self._initialize_engine()

    def _fall_back(self, error: ImportError):
        fallback = _FALLBACKS.get(self.engine_name)
        if fallback is None:
            raise RuntimeError(
                "No OCR engine available. Install paddleocr, easyocr or pytesseract."
            ) from error
        logger.warning("[OCR] %s not available (%s), falling back to %s",
                       self.engine_name, error, fallback)
        self.engine_name = fallback
        self._initialize_engine()

    def _initialize_engine(self):
        """Initialize the selected OCR engine."""
        if self.engine_name == "paddle":
            try:
                from paddleocr import PaddleOCR
                self.engine = PaddleOCR(
                    use_angle_cls=True,
                    lang=self.lang.value,
                    show_log=False
                )
                logger.info("[OCR] Initialized PaddleOCR (lang=%s)", self.lang.value)
            except ImportError as e:
                self._fall_back(e)

        elif self.engine_name == "easyocr":
            try:
                import easyocr
                self.engine = easyocr.Reader([self.lang.value], gpu=False, verbose=False)
                logger.info("[OCR] Initialized EasyOCR (lang=%s)", self.lang.value)
            except ImportError as e:
                self._fall_back(e)

        elif self.engine_name == "tesseract":
            try:
                import pytesseract
                self.engine = pytesseract
                logger.info("[OCR] Initialized Tesseract (lang=%s)", _TESSERACT_LANGS[self.lang])
            except ImportError as e:
                self._fall_back(e)

        else:
            raise ValueError(f"Unknown OCR engine: {self.engine_name}")

    def recognize(self, image: np.ndarray) -> List[Observation]:
        """
        Detect and recognize text regions.

        Returns:
            List of observations in image pixel coordinates
        """
        if image is None or image.size == 0:
            return []

        if self.engine_name == "paddle":
            return self._recognize_paddle(image)
        elif self.engine_name == "easyocr":
            return self._recognize_easyocr(image)
        elif self.engine_name == "tesseract":
            return self._recognize_tesseract(image)
        return []

    def _recognize_paddle(self, image: np.ndarray) -> List[Observation]:
        """PaddleOCR detection and recognition."""
        results = []
        try:
            ocr_result = self.engine.ocr(image, cls=True)
            if ocr_result and ocr_result[0]:
                for item in ocr_result[0]:
                    if item is None:
                        continue
                    polygon = item[0]  # [[x1,y1], [x2,y2], [x3,y3], [x4,y4]]
                    text, conf = item[1]
                    results.append(Observation.from_polygon(text, polygon, float(conf)))
        except Exception:
            logger.exception("[OCR] PaddleOCR error")
        return results

    def _recognize_easyocr(self, image: np.ndarray) -> List[Observation]:
        """EasyOCR detection and recognition."""
        results = []
        try:
            ocr_result = self.engine.readtext(image, paragraph=False)
            for polygon, text, conf in ocr_result:
                results.append(Observation.from_polygon(text, polygon, float(conf)))
        except Exception:
            logger.exception("[OCR] EasyOCR error")
        return results

    def _recognize_tesseract(self, image: np.ndarray) -> List[Observation]:
        """Tesseract detection and recognition, one observation per word."""
        results = []
        try:
            data = self.engine.image_to_data(
                image,
                lang=_TESSERACT_LANGS[self.lang],
                output_type=self.engine.Output.DICT
            )
            for i, text in enumerate(data['text']):
                if text.strip():
                    box = BoundingBox(
                        float(data['left'][i]), float(data['top'][i]),
                        float(data['width'][i]), float(data['height'][i])
                    )
                    conf = float(data['conf'][i])
                    conf = conf / 100.0 if conf >= 0 else 0.5
                    results.append(Observation.from_box(text, box, conf))
        except Exception:
            logger.exception("[OCR] Tesseract error")
        return results
