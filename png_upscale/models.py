"""
Model Management for PNG Upscaler

This module handles model downloading, loading and tensor layout conversion
for the PyTorch inference engines:
- SpandrelEngine: any 2x checkpoint Spandrel can load (.pth, .safetensors)
- TorchScriptEngine: a scripted/traced module saved with torch.jit.save
"""

import numpy as np
import requests
import torch
from pathlib import Path
from tqdm import tqdm
from typing import Optional, Union

from spandrel import ImageModelDescriptor, ModelLoader

from .config import DEFAULT_MODELS, MODELS_DIR, SCALE
from .errors import ModelLoadFailure
from .inference import InferenceEngine, ProgressCallback, TensorLayout


# ============================================================================
# Device Configuration
# ============================================================================
DEVICE = "cuda" if torch.cuda.is_available() else "cpu"

TORCHSCRIPT_EXTENSIONS = {'.ts', '.jit', '.torchscript'}

# Share of the load progress bar spent downloading (the rest is model init)
DOWNLOAD_PROGRESS_SHARE = 0.9


# ============================================================================
# GPU Utilities
# ============================================================================

def clear_gpu_memory() -> None:
    """Free cached VRAM (no-op on CPU)."""
    if DEVICE == "cuda":
        torch.cuda.empty_cache()


def get_model_dtype(model) -> torch.dtype:
    """
    Detect the actual dtype of model weights.

    Handles both regular models and torch.compile wrapped models.
    """
    try:
        if hasattr(model, '_orig_mod'):
            param = next(model._orig_mod.parameters())
        else:
            param = next(model.parameters())
        return param.dtype
    except StopIteration:
        return torch.float32  # Fallback if no parameters found


# ============================================================================
# Tensor Layout Conversion
# ============================================================================

def to_model_input(
    chunk: np.ndarray,
    layout: TensorLayout,
    dtype: torch.dtype = torch.float32,
    device: str = DEVICE
) -> torch.Tensor:
    """
    Convert an (h, w, 4) uint8 chunk into the tensor a model expects.

    Args:
        chunk: RGBA chunk
        layout: Model input layout
        dtype: Float dtype for RGB_NCHW_FLOAT (float16 or float32)
        device: Target device

    Returns:
        (h, w, 4) uint8, (1, 3, h, w) uint8 or (1, 3, h, w) float tensor
    """
    if layout.has_alpha:
        return torch.from_numpy(np.ascontiguousarray(chunk)).to(device)

    rgb = np.ascontiguousarray(chunk[:, :, :3])
    tensor = torch.from_numpy(rgb).permute(2, 0, 1).unsqueeze(0)

    if layout is TensorLayout.RGB_NCHW_UINT8:
        return tensor.contiguous().to(device)

    return (tensor.to(torch.float32) / 255.0).to(dtype=dtype, device=device)


def from_model_output(output: torch.Tensor, layout: TensorLayout) -> np.ndarray:
    """
    Convert a model output tensor back to an (H, W, 4) uint8 array.

    RGB layouts get an opaque alpha plane; the pipeline rebuilds alpha
    from the source image anyway.
    """
    output = output.detach()

    if layout.has_alpha:
        return output.cpu().numpy()

    if output.dim() == 4:
        output = output.squeeze(0)
    rgb = output.permute(1, 2, 0).float().cpu().numpy()

    if layout.is_float:
        # CRITICAL: Clean NaN/Inf IMMEDIATELY after model output
        if not np.isfinite(rgb).all():
            print("⚠️ Warning: NaN/Inf in tile output, cleaning (model may be unstable)")
            rgb = np.nan_to_num(rgb, nan=0.0, posinf=1.0, neginf=0.0)
        rgb = np.clip(rgb, 0.0, 1.0) * 255.0

    rgb = np.clip(rgb, 0, 255).round().astype(np.uint8)
    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb, alpha], axis=2)


# ============================================================================
# Model Download
# ============================================================================

def find_default_model(name: str) -> Optional[str]:
    """Return the DEFAULT_MODELS file key matching a filename or display name."""
    if name in DEFAULT_MODELS:
        return name
    for filename, config in DEFAULT_MODELS.items():
        if config.get("display_name") == name:
            return filename
    return None


def download_model(
    filename: str,
    progress: Optional[ProgressCallback] = None,
    models_dir: Path = MODELS_DIR
) -> Path:
    """
    Download a default model if not present locally.

    Args:
        filename: DEFAULT_MODELS key
        progress: Optional callback receiving download progress in [0, DOWNLOAD_PROGRESS_SHARE]
        models_dir: Destination folder

    Returns:
        Path to the model file

    Raises:
        ModelLoadFailure: If the model is unknown or the download fails
    """
    config = DEFAULT_MODELS.get(filename)
    if config is None or not config.get("url"):
        raise ModelLoadFailure(f"No download URL known for model '{filename}'")

    model_path = Path(models_dir) / filename
    if model_path.exists():
        return model_path

    Path(models_dir).mkdir(parents=True, exist_ok=True)
    part_path = model_path.with_name(model_path.name + ".part")

    print(f"📥 Downloading {config.get('display_name', filename)}...")
    try:
        response = requests.get(config["url"], stream=True, timeout=30)
        response.raise_for_status()
        total = int(response.headers.get('content-length', 0))

        with open(part_path, 'wb') as f, tqdm(
            desc=filename,
            total=total,
            unit='B',
            unit_scale=True
        ) as pbar:
            for data in response.iter_content(1 << 16):
                f.write(data)
                pbar.update(len(data))
                if progress is not None and total:
                    progress(DOWNLOAD_PROGRESS_SHARE * min(pbar.n, total) / total)

        part_path.replace(model_path)
    except (requests.RequestException, OSError) as e:
        part_path.unlink(missing_ok=True)
        raise ModelLoadFailure(f"Download of '{filename}' failed: {e}") from e

    return model_path


def resolve_model(
    model: Union[str, Path],
    progress: Optional[ProgressCallback] = None,
    models_dir: Path = MODELS_DIR
) -> Path:
    """
    Find a model artifact: a local path, a file in models_dir, or a default model to download.

    Raises:
        ModelLoadFailure: If the model can't be found or downloaded
    """
    path = Path(model)
    if path.is_file():
        return path

    local = Path(models_dir) / path.name
    if local.is_file():
        return local

    filename = find_default_model(str(model))
    if filename is None:
        raise ModelLoadFailure(f"Model '{model}' not found and no download URL is known")
    return download_model(filename, progress, models_dir)


# ============================================================================
# PyTorch Engines
# ============================================================================

class TorchEngine(InferenceEngine):
    """Shared forward/release logic for PyTorch modules."""

    def __init__(
        self,
        model_path: Union[str, Path],
        layout: TensorLayout = TensorLayout.RGB_NCHW_FLOAT,
        use_fp16: bool = False,
        device: str = DEVICE,
        models_dir: Path = MODELS_DIR
    ):
        super().__init__(name=Path(model_path).name)
        self.model_path = model_path
        self.layout = layout
        self.use_fp16 = use_fp16
        self.device = device
        self.models_dir = models_dir
        self.model = None
        self.dtype = torch.float32

    def _forward(self, chunk: np.ndarray) -> np.ndarray:
        tensor = to_model_input(chunk, self.layout, dtype=self.dtype, device=self.device)
        with torch.inference_mode():
            output = self.model(tensor)
        return from_model_output(output, self.layout)

    def _apply_precision(self, model):
        """Convert to FP16 on CUDA when requested, keeping integer buffers intact."""
        if self.device == "cuda" and self.use_fp16 and self.layout.is_float:
            try:
                model = model.half()
                for buffer in model.buffers():
                    if buffer.dtype in [torch.float32, torch.float64]:
                        buffer.data = buffer.data.half()
                print("✅ FP16 enabled (VRAM usage reduced by ~50%)")
            except RuntimeError as e:
                print(f"⚠️ FP16 conversion failed: {e}, using FP32")
                model = model.float()
        return model

    def _release(self) -> None:
        self.model = None
        clear_gpu_memory()


class SpandrelEngine(TorchEngine):
    """
    Engine for super-resolution checkpoints loaded with Spandrel.

    The architecture is auto-detected; only 2x image models are accepted.
    """

    def __init__(
        self,
        model_path: Union[str, Path],
        use_fp16: bool = True,
        device: str = DEVICE,
        models_dir: Path = MODELS_DIR
    ):
        super().__init__(
            model_path,
            layout=TensorLayout.RGB_NCHW_FLOAT,
            use_fp16=use_fp16,
            device=device,
            models_dir=models_dir
        )
        self.scale = None

    def _load(self, progress: ProgressCallback) -> None:
        path = resolve_model(self.model_path, progress, self.models_dir)
        print(f"⏳ Loading {self.name}...")
        progress(DOWNLOAD_PROGRESS_SHARE)

        descriptor = ModelLoader().load_from_file(str(path))
        if not isinstance(descriptor, ImageModelDescriptor):
            raise ModelLoadFailure(f"'{path.name}' is not an image-to-image model")
        if descriptor.scale != SCALE:
            raise ModelLoadFailure(
                f"'{path.name}' is a {descriptor.scale}x model, only {SCALE}x models are supported"
            )

        self.scale = descriptor.scale
        model = descriptor.model.to(self.device).eval()
        self.model = self._apply_precision(model)
        self.dtype = get_model_dtype(self.model)

        precision = 'FP16' if self.dtype == torch.float16 else 'FP32'
        print(f"✅ {self.name} loaded on {self.device} ({precision}) - {self.scale}x upscale")


class TorchScriptEngine(TorchEngine):
    """Engine for a TorchScript archive with a declared tensor layout."""

    def _load(self, progress: ProgressCallback) -> None:
        path = resolve_model(self.model_path, progress, self.models_dir)
        print(f"⏳ Loading {self.name}...")
        progress(DOWNLOAD_PROGRESS_SHARE)

        model = torch.jit.load(str(path), map_location=self.device).eval()
        self.model = self._apply_precision(model)
        self.dtype = get_model_dtype(self.model) if self.layout.is_float else torch.float32

        print(f"✅ {self.name} loaded on {self.device} ({self.layout.value})")


def create_engine(
    model: Union[str, Path],
    use_fp16: bool = True,
    layout: Optional[TensorLayout] = None,
    models_dir: Path = MODELS_DIR
) -> TorchEngine:
    """
    Pick an engine for a model artifact from its extension.

    TorchScript archives (.ts, .jit, .torchscript) use TorchScriptEngine with
    the given layout (RGB_NCHW_FLOAT by default); everything else goes
    through Spandrel.
    """
    if Path(model).suffix.lower() in TORCHSCRIPT_EXTENSIONS:
        return TorchScriptEngine(
            model,
            layout=layout or TensorLayout.RGB_NCHW_FLOAT,
            use_fp16=use_fp16,
            models_dir=models_dir
        )
    if layout not in (None, TensorLayout.RGB_NCHW_FLOAT):
        raise ValueError(f"Spandrel models use {TensorLayout.RGB_NCHW_FLOAT.value}, got {layout.value}")
    return SpandrelEngine(model, use_fp16=use_fp16, models_dir=models_dir)
