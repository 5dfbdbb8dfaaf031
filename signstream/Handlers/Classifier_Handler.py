"""Classifier Handler - TorchScript sign classifier behind the SignClassifier protocol."""
import threading
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import torch

from signstream.utils import constants as C
from signstream.utils.config import PipelineConfig
from signstream.utils.failures import ClassifierError, ModelLoadError
from signstream.utils.logger import Logger


def load_vocabulary(path: Union[str, Path]) -> List[str]:
    """
    Read the label vocabulary, one label per line, in classifier output order.

    Surrounding whitespace is stripped and blank lines are skipped.

    Raises:
        ModelLoadError: The file is missing, unreadable or holds no labels.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ModelLoadError(f"Failed to read vocabulary {path}: {e}") from e

    labels = [line.strip() for line in text.splitlines() if line.strip()]
    if not labels:
        raise ModelLoadError(f"Vocabulary is empty: {path}")
    return labels


class TorchSignClassifier:
    """Runs a TorchScript model on flattened landmark windows.

    The input tensor is reshaped to (1, frames, points_per_hand * 2) and the
    first row of the model output is returned as the probability vector.
    Calls are serialized: one model instance never runs two inferences at once.
    """

    def __init__(self, config: PipelineConfig, model: Optional[torch.nn.Module] = None,
                 labels: Optional[List[str]] = None):
        """
        Args:
            config: Frozen pipeline settings (model path, vocabulary, threads, device).
            model: Pre-built module; when omitted the TorchScript file is loaded.
            labels: Vocabulary; when omitted it is read from config.vocabulary_path.

        Raises:
            ModelLoadError: The model or vocabulary cannot be loaded.
        """
        self.config = config
        self.logger = Logger("ClassifierHandler")
        self.device = self._select_device(config.classifier_device)
        self.input_shape = (1, config.frames_per_prediction, config.points_per_hand * C.COORDS_PER_POINT)
        self._lock = threading.Lock()

        torch.set_num_threads(config.classifier_threads)

        self.labels = list(labels) if labels is not None else load_vocabulary(config.vocabulary_path)
        self.model = model if model is not None else self._load_model(config.classifier_model)
        self.model.to(self.device)
        self.model.eval()

        self.logger.info(
            f"Classifier ready on {self.device} with {len(self.labels)} label(s), "
            f"{config.classifier_threads} thread(s)"
        )

    def _select_device(self, requested: str) -> torch.device:
        if requested.startswith("cuda") and not torch.cuda.is_available():
            self.logger.warning(f"Device '{requested}' unavailable, falling back to cpu")
            return torch.device("cpu")
        return torch.device(requested)

    def _load_model(self, model_path: str) -> torch.nn.Module:
        path = Path(model_path)
        if not path.exists():
            raise ModelLoadError(f"Classifier model not found: {path}")
        try:
            model = torch.jit.load(str(path), map_location=self.device)
        except (RuntimeError, ValueError) as e:
            raise ModelLoadError(f"Failed to load classifier from {path}: {e}") from e
        self.logger.info(f"Classifier model loaded: {path}")
        return model

    def classify(self, tensor: np.ndarray) -> np.ndarray:
        """
        Args:
            tensor: Flat float array of length frames * points_per_hand * 2.

        Returns:
            float32 probability vector from the first output row.

        Raises:
            ClassifierError: The tensor has the wrong size or inference failed.
        """
        flat = np.ascontiguousarray(tensor, dtype=np.float32).reshape(-1)
        expected = int(np.prod(self.input_shape))
        if flat.size != expected:
            raise ClassifierError(f"Expected {expected} input values, got {flat.size}")

        inputs = torch.from_numpy(flat).reshape(self.input_shape).to(self.device)
        with self._lock, torch.inference_mode():
            try:
                output = self.model(inputs)
            except RuntimeError as e:
                raise ClassifierError(f"Inference failed: {e}") from e

        probabilities = output[0] if output.dim() > 1 else output
        return probabilities.reshape(-1).detach().cpu().numpy().astype(np.float32)
