import re
import json
import logging
from typing import Dict, Optional

from pydantic import ValidationError

from blueprint.core import config
from blueprint.core.exceptions import BlueprintGenerationError
from blueprint.models.api import GenerationRequest, ProjectBlueprint

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are an expert app architect. Generate detailed, actionable app structures based on user requirements.
Always return valid JSON and nothing else.
"""

BLUEPRINT_SHAPE = """{
  "projectName": "...",
  "projectDescription": "...",
  "targetAudience": "...",
  "competitors": ["...", "..."],
  "techStack": {
    "frontend": "...",
    "backend": "...",
    "database": "...",
    "authentication": "...",
    "payment": "...",
    "hosting": "..."
  },
  "features": [
    {"id": "feature1", "name": "...", "description": "...", "priority": "high|medium|low"}
  ],
  "monetization": {"model": "...", "pricing": "..."},
  "userPersona": {
    "name": "...",
    "age": "...",
    "occupation": "...",
    "goals": ["...", "..."],
    "painPoints": ["...", "..."]
  }
}"""

FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
FENCED_ANY = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)
BARE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def build_prompt(request: GenerationRequest, instructions: Optional[str] = None) -> str:
    decisions_text = "\n".join(f"- {key}: {value}" for key, value in request.decisions.items())
    prompt = f"""Based on the user's decisions, create a comprehensive mindmap structure for their {request.purpose} {request.platform} app.

### USER DECISIONS:
{decisions_text}

App Purpose: {request.purpose}
App Type: {request.platform}

Include a descriptive project name, a clear description, the target audience, 3-5 competitors,
a tech stack that follows the decisions above, features derived from the choices, a monetization
model and a typical user persona.

Return ONLY valid JSON matching this structure:
{BLUEPRINT_SHAPE}"""
    if instructions:
        prompt = f"### ADDITIONAL INSTRUCTIONS:\n{instructions}\n\n{prompt}"
    return f"{SYSTEM_PROMPT.strip()}\n\n{prompt}"


def extract_json(text: str) -> Dict:
    """Pulls the first JSON object out of an LLM reply, tolerating markdown fences."""
    candidates = []
    for pattern in (FENCED_JSON, FENCED_ANY):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(1))
    match = BARE_OBJECT.search(text)
    if match:
        candidates.append(match.group(0))
    candidates.append(text)

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise BlueprintGenerationError("No JSON object found in model response")


class BlueprintGenerator:
    def __init__(self, llm_service):
        self.llm_service = llm_service

    async def generate(self, request: GenerationRequest) -> ProjectBlueprint:
        instructions = config.get_global_setting("blueprint_instructions")
        prompt = build_prompt(request, instructions)

        # One LLM identity per wizard session so runs never share context.
        llm_user_id = f"blueprint_{request.session_id}"
        response_text = await self.llm_service.generate_response(llm_user_id, prompt)
        if not response_text:
            raise BlueprintGenerationError("Empty response from model")

        data = extract_json(response_text)
        if not data.get("projectName") or not data.get("features"):
            raise BlueprintGenerationError("Invalid mindmap structure received from AI")
        try:
            blueprint = ProjectBlueprint.model_validate(data)
        except ValidationError as e:
            raise BlueprintGenerationError(f"Invalid mindmap structure received from AI: {e}") from e

        logger.info(f"Generated blueprint '{blueprint.project_name}' for session {request.session_id}")
        return blueprint
