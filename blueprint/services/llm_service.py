import json
import shutil
import asyncio
import logging
from typing import Optional, Dict, AsyncGenerator
from blueprint.core import config

logger = logging.getLogger(__name__)

FALLBACK_MODELS = {
    "gemini-3-pro-preview": "gemini-3-flash-preview",
    "gemini-2.5-pro": "gemini-2.5-flash",
    "gemini-1.5-pro": "gemini-1.5-flash"
}

CAPACITY_KEYWORDS = ["429", "capacity", "quota", "exhausted", "rate limit"]


class GeminiAgent:
    """Runs one-shot prompts through the gemini CLI in stream-json mode."""

    def __init__(self, model: Optional[str] = None, gemini_cmd: Optional[str] = None):
        self.model_name = model or config.MODEL_NAME
        self.gemini_cmd = gemini_cmd or shutil.which(config.GEMINI_CMD) or config.GEMINI_CMD

    async def _create_subprocess(self, args, **kwargs):
        return await asyncio.create_subprocess_exec(*args, **kwargs)

    def _build_args(self, model: Optional[str]):
        args = [self.gemini_cmd, "--output-format", "stream-json", "--allowed-tools", "none"]
        if model:
            args.extend(["--model", model])
        return args

    async def generate_response_stream(self, user_id: str, prompt: str, model: Optional[str] = None) -> AsyncGenerator[Dict, None]:
        current_model = model or self.model_name
        attempt = 0
        max_attempts = 2

        while attempt < max_attempts:
            attempt += 1
            args = self._build_args(current_model)
            logger.debug(f"[{user_id}] Attempt {attempt}: running {' '.join(args)}")

            proc = None
            should_fallback = False
            try:
                proc = await self._create_subprocess(
                    args,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                stdout, stderr = await proc.communicate(prompt.encode("utf-8"))

                for line in stdout.decode(errors="replace").splitlines():
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        yield {"type": "raw", "content": line}
                        continue

                    fallback = FALLBACK_MODELS.get(current_model)
                    if fallback and attempt < max_attempts and any(k in str(data).lower() for k in CAPACITY_KEYWORDS):
                        logger.warning(f"[{user_id}] Capacity error from {current_model}, falling back to {fallback}")
                        yield {"type": "model_switch", "old_model": current_model, "new_model": fallback}
                        current_model = fallback
                        should_fallback = True
                        break
                    yield data

                if should_fallback:
                    continue

                if proc.returncode != 0:
                    err_text = stderr.decode(errors="replace").strip()
                    fallback = FALLBACK_MODELS.get(current_model)
                    if fallback and attempt < max_attempts and any(k in err_text.lower() for k in CAPACITY_KEYWORDS):
                        logger.warning(f"[{user_id}] Capacity error from {current_model}, falling back to {fallback}")
                        yield {"type": "model_switch", "old_model": current_model, "new_model": fallback}
                        current_model = fallback
                        continue
                    logger.error(f"[{user_id}] gemini exited with code {proc.returncode}: {err_text}")
                    yield {"type": "error", "content": f"Exit code {proc.returncode}"}
                break

            except Exception as e:
                logger.error(f"[{user_id}] Exception while running gemini: {e!r}")
                yield {"type": "error", "content": f"Exception: {e!r}"}
                break
            finally:
                if proc and proc.returncode is None:
                    try:
                        proc.terminate()
                        await proc.wait()
                    except ProcessLookupError:
                        pass

    async def generate_response(self, user_id: str, prompt: str, model: Optional[str] = None) -> str:
        full_response = ""
        async for chunk in self.generate_response_stream(user_id, prompt, model):
            if chunk.get("type") == "message":
                # The CLI echoes the prompt back as a user message.
                if chunk.get("role") != "user":
                    full_response += chunk.get("content", "")
            elif chunk.get("type") == "error":
                full_response += f"\n[Error: {chunk.get('content')}]"
            elif chunk.get("type") == "raw":
                full_response += chunk.get("content", "") + "\n"
        return full_response.strip()
