# services/detection_service.py
import base64
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import requests
from loguru import logger


@dataclass
class DetectionResult:
    faces: list = field(default_factory=list)

    @property
    def face_count(self):
        return len(self.faces)


def _clamp(value):
    return min(max(float(value), 0.0), 1.0)


class DetectionProvider(ABC):
    name = 'base'

    @abstractmethod
    def detect(self, image):
        """Return a DetectionResult for a NormalizedImage."""


class SyntheticDetectionProvider(DetectionProvider):
    """Stand-in detector that fakes latency and returns 1-5 random faces."""

    name = 'synthetic'

    def __init__(self, delay_range=(0.5, 1.5), rng=None):
        self.delay_range = delay_range
        self.rng = rng or random.Random()

    def detect(self, image):
        low, high = self.delay_range
        time.sleep(self.rng.uniform(low, high))

        face_count = self.rng.randint(1, 5)
        faces = [{
            'id': i + 1,
            'x': self.rng.random() * 0.8,
            'y': self.rng.random() * 0.8,
            'width': 0.1 + self.rng.random() * 0.2,
            'height': 0.1 + self.rng.random() * 0.2,
            'confidence': 0.7 + self.rng.random() * 0.3,
        } for i in range(face_count)]
        return DetectionResult(faces=faces)


class CloudVisionDetectionProvider(DetectionProvider):
    """Google Cloud Vision FACE_DETECTION client.

    Any failure of the remote call is logged and answered by the
    ``fallback`` provider instead, so ``detect`` never raises.
    """

    name = 'cloud-vision'

    def __init__(self, api_key, api_url, fallback, timeout=10, max_results=20):
        self.api_key = api_key
        self.api_url = api_url
        self.fallback = fallback
        self.timeout = timeout
        self.max_results = max_results
        self.fallback_count = 0
        self._fallback_lock = threading.Lock()

    def detect(self, image):
        try:
            return self._detect_remote(image)
        except Exception as e:
            with self._fallback_lock:
                self.fallback_count += 1
                fallbacks = self.fallback_count
            logger.warning(
                "Cloud Vision detection failed ({}: {}), falling back to {} provider (fallbacks so far: {})",
                type(e).__name__, e, self.fallback.name, fallbacks
            )
            return self.fallback.detect(image)

    def _detect_remote(self, image):
        payload = {
            'requests': [{
                'image': {'content': base64.b64encode(image.data).decode('ascii')},
                'features': [{'type': 'FACE_DETECTION', 'maxResults': self.max_results}],
            }]
        }
        response = requests.post(
            self.api_url,
            params={'key': self.api_key},
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()

        body = response.json()
        result = body['responses'][0]
        if 'error' in result:
            raise ValueError(f"Vision API error: {result['error'].get('message', 'unknown')}")

        annotations = result.get('faceAnnotations', [])
        faces = [
            self._to_face(index + 1, annotation, image.width, image.height)
            for index, annotation in enumerate(annotations)
        ]
        return DetectionResult(faces=faces)

    @staticmethod
    def _to_face(face_id, annotation, width, height):
        vertices = annotation['boundingPoly']['vertices']
        if not vertices:
            raise ValueError("Face annotation without vertices")
        # Vision omits coordinates that are zero
        xs = [v.get('x', 0) for v in vertices]
        ys = [v.get('y', 0) for v in vertices]

        left, top = _clamp(min(xs) / width), _clamp(min(ys) / height)
        right, bottom = _clamp(max(xs) / width), _clamp(max(ys) / height)
        return {
            'id': face_id,
            'x': left,
            'y': top,
            'width': right - left,
            'height': bottom - top,
            'confidence': _clamp(annotation.get('detectionConfidence', 0.0)),
        }


def create_detection_provider(config):
    """Pick the detection provider once, at application startup."""
    synthetic = SyntheticDetectionProvider(delay_range=config['SYNTHETIC_DELAY_RANGE'])
    api_key = config.get('VISION_API_KEY')
    if not api_key:
        logger.info("No VISION_API_KEY configured, using synthetic face detection")
        return synthetic

    logger.info("Using Cloud Vision face detection at {}", config['VISION_API_URL'])
    return CloudVisionDetectionProvider(
        api_key=api_key,
        api_url=config['VISION_API_URL'],
        fallback=synthetic,
        timeout=config['VISION_API_TIMEOUT'],
        max_results=config['VISION_MAX_RESULTS'],
    )
