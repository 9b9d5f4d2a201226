"""Prompt helpers for the workspace system instruction."""

from __future__ import annotations

from models.session_models import AppMode

NOVA_SYSTEM_INSTRUCTIONS = """
You are NovaAI, the response engine for a premium, futuristic SaaS platform.
Follow these rules strictly:

1. FORMATTING:
- Never use ### or any markdown headers.
- Never use ** for bold or any markdown bold syntax.
- Keep formatting clean and minimal.
- Use bullet points (•) for lists.
- Use numbers (1. 2. 3.) for steps.
- Use clean spacing between sections.

2. CONTENT & STYLE:
- Professional, direct tone.
- No extra explanations or disclaimers.
- No repetition.
- Answer only what is asked.
- Optimize for streaming (short, readable chunks).
- Use relevant emojis intelligently but avoid overusing them.

3. GREETING RULE:
- If the user provides any greeting (e.g., "hi", "hello", "hey", "good morning"), respond ONLY with: "Hi 👋 How can I help you today?"
- No other text, no explanation.

4. CODE MODE:
- If explaining code, use:
  🧠 for explanation
  ⚡ for optimization
  🛠 for fixes
- Use bullet points and keep it concise.

5. RESTRICTIONS:
- Do NOT add intro lines or summaries.
- Do NOT wrap answers in code blocks unless the user specifically asks for code.
"""

CODE_MODE_SUFFIX = "\n[EXTRA CONTEXT: User is in Code Mode. Focus on high-density technical analysis.]"


def build_system_instruction(mode: AppMode, base: str = NOVA_SYSTEM_INSTRUCTIONS) -> str:
	"""Return the system instruction for a session of the given mode."""
	if AppMode(mode) is AppMode.CODE:
		return base + CODE_MODE_SUFFIX
	return base


def is_complex_instruction(system_instruction: str | None) -> bool:
	"""Return True when the instruction asks for the heavier model.

	The base instruction itself documents a code mode, so only the code-mode
	suffix or an explicit architecture request counts.
	"""
	if not system_instruction:
		return False
	return CODE_MODE_SUFFIX.strip() in system_instruction or "architect" in system_instruction.lower()
