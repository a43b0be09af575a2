"""Device detection, layer offload and synchronization helpers for engines."""
import torch
import logging

from .base import OFFLOAD_ALL

log = logging.getLogger(__name__)


def get_device_config(config):
    """
    Determine device configuration from config.

    Args:
        config: Engine configuration dict

    Returns:
        tuple: (use_cuda, use_mps, device_name)
    """
    preference = config.get("device_preference", "auto")
    has_cuda = torch.cuda.is_available()
    has_mps = torch.backends.mps.is_available() if hasattr(torch.backends, 'mps') else False

    if preference == "cuda":
        if not has_cuda:
            raise RuntimeError("CUDA requested but no CUDA device is available.")
        return True, False, "CUDA"
    elif preference == "mps":
        if not has_mps:
            raise RuntimeError("MPS requested but MPS is not available (requires Apple Silicon).")
        return False, True, "MPS"
    elif preference == "cpu":
        return False, False, "CPU"
    else:  # 'auto'
        use_cuda = has_cuda
        use_mps = not has_cuda and has_mps
        device_name = "CUDA" if use_cuda else ("MPS" if use_mps else "CPU")
        return use_cuda, use_mps, device_name


def get_accelerator(use_cuda, use_mps):
    """Return the accelerator device string, or None when running on CPU."""
    if use_cuda:
        return "cuda:0"
    if use_mps:
        return "mps"
    return None


def build_layer_device_map(n_layers, n_gpu_layers, accelerator):
    """
    Build a transformers device_map that offloads the first n_gpu_layers
    decoder layers to the accelerator and keeps the rest on CPU.

    Assumes the Llama-style module layout (model.embed_tokens,
    model.layers.{i}, model.norm, lm_head).

    Returns:
        str or dict: A single device string when every layer lands on the
        same device, otherwise a per-module mapping.
    """
    if accelerator is None or n_gpu_layers == 0:
        return "cpu"
    if n_gpu_layers == OFFLOAD_ALL or n_gpu_layers >= n_layers:
        return accelerator

    device_map = {"model.embed_tokens": accelerator, "model.rotary_emb": accelerator}
    for i in range(n_layers):
        device_map[f"model.layers.{i}"] = accelerator if i < n_gpu_layers else "cpu"
    device_map["model.norm"] = "cpu"
    device_map["lm_head"] = "cpu"
    log.debug("Partial offload: %d/%d layers on %s", n_gpu_layers, n_layers, accelerator)
    return device_map


def get_load_kwargs(use_cuda, use_mps, device_map):
    """
    Get keyword arguments for model loading.

    Args:
        use_cuda: Whether to use CUDA
        use_mps: Whether to use MPS
        device_map: Result of build_layer_device_map

    Returns:
        dict: Load kwargs
    """
    # Half precision only when every module sits on the accelerator
    if (use_cuda or use_mps) and isinstance(device_map, str) and device_map != "cpu":
        dtype = torch.float16
    else:
        dtype = torch.float32

    kwargs = {
        "torch_dtype": dtype,
        "low_cpu_mem_usage": True,
    }
    if device_map != "cpu":
        kwargs["device_map"] = device_map
    return kwargs


def synchronize_device(device):
    """Block until all queued kernels on the device have completed."""
    device_type = torch.device(device).type
    if device_type == "cuda":
        torch.cuda.synchronize(device)
    elif device_type == "mps":
        torch.mps.synchronize()


def clear_device_cache():
    """Clear CUDA and MPS caches."""
    if torch.cuda.is_available():
        torch.cuda.empty_cache()
    if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
        torch.mps.empty_cache()
