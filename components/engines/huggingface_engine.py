from dataclasses import dataclass, field
from typing import Any, Optional
import gc
import logging
import time

import torch
from transformers import AutoConfig, AutoModelForCausalLM, AutoTokenizer, DynamicCache

from .base import OFFLOAD_ALL, BaseEngine, DecodeError, EngineSetupError, ProbeBatch
from .device_utils import (
    get_device_config, get_accelerator, build_layer_device_map,
    get_load_kwargs, synchronize_device, clear_device_cache
)

log = logging.getLogger(__name__)


@dataclass
class HuggingFaceModel:
    """Loaded model handle."""
    model: Any
    tokenizer: Any
    input_device: str
    sync_device: Optional[str]
    model_path: str


@dataclass
class HuggingFaceSession:
    """Working state of one model: KV cache plus optional perf counters."""
    handle: HuggingFaceModel
    n_ctx: int
    n_batch: int
    precise_timing: bool
    cache: Any = None
    n_past: int = 0
    n_eval: int = 0
    t_eval: float = 0.0
    _pending_start: Optional[float] = field(default=None, repr=False)


class HuggingFaceEngine(BaseEngine):
    """Engine adapter over a transformers causal language model."""

    def load_model(self, config):
        model_path = config.get("model_path")
        if not model_path:
            raise EngineSetupError("No model path given")

        n_gpu_layers = int(config.get("n_gpu_layers", OFFLOAD_ALL))
        try:
            use_cuda, use_mps, device_name = get_device_config(config)
            accelerator = get_accelerator(use_cuda, use_mps)
            log.debug("Device: %s", device_name)

            log.debug("Loading tokenizer for %s", model_path)
            tokenizer = AutoTokenizer.from_pretrained(model_path)

            model_cfg = AutoConfig.from_pretrained(model_path)
            n_layers = getattr(model_cfg, "num_hidden_layers", 0)
            device_map = build_layer_device_map(n_layers, n_gpu_layers, accelerator)
            load_kwargs = get_load_kwargs(use_cuda, use_mps, device_map)

            log.debug("Loading model: layers=%d, n_gpu_layers=%d, dtype=%s",
                      n_layers, n_gpu_layers, load_kwargs.get("torch_dtype"))
            model = AutoModelForCausalLM.from_pretrained(model_path, **load_kwargs)
            model.eval()
        except Exception as e:
            raise EngineSetupError(f"Failed to load model {model_path}: {e}") from e

        on_accelerator = device_map != "cpu"
        input_device = accelerator if on_accelerator else "cpu"
        log.info("Model loaded: %s on %s", model_path, device_name if on_accelerator else "CPU")
        return HuggingFaceModel(
            model=model,
            tokenizer=tokenizer,
            input_device=input_device,
            sync_device=accelerator if on_accelerator else None,
            model_path=model_path,
        )

    def create_session(self, handle, config):
        n_ctx = int(config.get("n_ctx", 512))
        n_batch = int(config.get("n_batch", 512))
        if n_ctx <= 0 or n_batch <= 0:
            raise EngineSetupError(f"Invalid session size: n_ctx={n_ctx}, n_batch={n_batch}")

        session = HuggingFaceSession(
            handle=handle,
            n_ctx=n_ctx,
            n_batch=n_batch,
            precise_timing=bool(config.get("precise_timing", True)),
        )
        self.rebuild_cache(session)
        log.debug("Session created: n_ctx=%d, n_batch=%d", n_ctx, n_batch)
        return session

    def build_probe_batch(self, handle, session):
        tokenizer = handle.tokenizer
        token_id = tokenizer.bos_token_id
        if token_id is None:
            token_id = tokenizer.eos_token_id
        if token_id is None:
            log.warning("Tokenizer has no BOS/EOS token, probing with token id 0")
            token_id = 0
        if session.n_batch < 1:
            raise EngineSetupError("Session batch size cannot hold the probe token")

        input_ids = torch.tensor([[token_id]], dtype=torch.long, device=handle.input_device)
        return ProbeBatch(token_id=token_id, payload=input_ids)

    def decode(self, session, batch):
        if session.n_past + batch.n_tokens > session.n_ctx:
            raise DecodeError(
                f"Context full: {session.n_past} cached + {batch.n_tokens} new > n_ctx {session.n_ctx}"
            )
        if session.precise_timing:
            session._pending_start = time.perf_counter()
        try:
            with torch.inference_mode():
                outputs = session.handle.model(
                    input_ids=batch.payload,
                    past_key_values=session.cache,
                    use_cache=True,
                )
        except Exception as e:
            raise DecodeError(f"Decode failed: {e}") from e
        session.cache = outputs.past_key_values
        session.n_past += batch.n_tokens

    def synchronize(self, session):
        device = session.handle.sync_device
        if device is not None:
            try:
                synchronize_device(device)
            except Exception as e:
                raise DecodeError(f"Synchronize failed on {device}: {e}") from e
        if session._pending_start is not None:
            session.t_eval += time.perf_counter() - session._pending_start
            session.n_eval += 1
            session._pending_start = None

    def reset_cache(self, session):
        session.cache = None
        session.n_past = 0

    def rebuild_cache(self, session):
        session.cache = DynamicCache()

    def now(self):
        return time.perf_counter()

    def get_perf_metrics(self, session):
        if not session.precise_timing or session.n_eval == 0:
            return {}
        return {
            "n_eval": session.n_eval,
            "t_eval_ms": session.t_eval * 1000.0,
            "avg_eval_ms": session.t_eval * 1000.0 / session.n_eval,
        }

    def free_session(self, session):
        session.cache = None
        session.handle = None

    def unload_model(self, handle):
        log.debug("Unloading model")
        handle.model = None
        handle.tokenizer = None
        clear_device_cache()
        gc.collect()
        log.debug("Model unloaded")
