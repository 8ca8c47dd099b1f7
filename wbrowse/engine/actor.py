"""Natural-language page interaction using Mistral native tool calling.

The actor snapshots the interactive elements of a page, asks the model to
pick exactly one action through a forced tool call, and performs it with
Playwright locators.

Flow:
1. Tag visible interactive elements with ``data-wb-ref`` and list them
2. Build the system prompt from that list
3. Call Mistral with the ``perform_action`` tool and tool_choice="any"
4. Run the chosen click/fill/press on the referenced element
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from wbrowse.core.errors import EngineError
from wbrowse.engine.base import ActResult

if TYPE_CHECKING:
    from mistralai import Mistral

logger = logging.getLogger(__name__)

REF_ATTRIBUTE = "data-wb-ref"
MAX_ELEMENTS = 200
ACTION_TIMEOUT_MS = 10_000

_OBSERVE_SCRIPT = """
(args) => {
  const [attr, limit] = args;
  const selector = 'a, button, input, select, textarea, [role="button"], [onclick]';
  // Refs from an earlier observe must not shadow this round's numbering
  document.querySelectorAll('[' + attr + ']').forEach((el) => el.removeAttribute(attr));
  const out = [];
  let ref = 0;
  for (const el of document.querySelectorAll(selector)) {
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 && rect.height === 0) continue;
    el.setAttribute(attr, String(ref));
    out.push({
      ref: ref,
      tag: el.tagName.toLowerCase(),
      type: el.getAttribute('type') || '',
      text: (el.innerText || el.value || '').trim().slice(0, 80),
      label: el.getAttribute('aria-label') || el.getAttribute('label')
        || el.getAttribute('placeholder') || el.getAttribute('name') || '',
    });
    ref += 1;
    if (out.length >= limit) break;
  }
  return out;
}
"""


def build_action_tool_schema() -> List[Dict[str, Any]]:
    """
    Build the Mistral tool schema for a single page action.

    The model must reference an element by the ``ref`` number shown in the
    element list and choose one of click, fill or press.
    """
    return [{
        "type": "function",
        "function": {
            "name": "perform_action",
            "description": (
                "Perform one action on an element of the current web page "
                "to fulfil the user's instruction."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "action": {
                        "type": "string",
                        "enum": ["click", "fill", "press"],
                        "description": "click an element, fill a text field, or press a key in it",
                    },
                    "ref": {
                        "type": "integer",
                        "description": "The ref number of the target element",
                    },
                    "value": {
                        "type": "string",
                        "description": "Text to fill, or key name to press (e.g. 'Enter')",
                    },
                    "description": {
                        "type": "string",
                        "description": "One short sentence describing the action taken",
                    },
                },
                "required": ["action", "ref", "description"],
            },
        },
    }]


def format_elements(elements: List[Dict[str, Any]]) -> str:
    lines = []
    for element in elements:
        parts = [f"[{element['ref']}] <{element['tag']}"]
        if element.get("type"):
            parts.append(f" type={element['type']}")
        parts.append(">")
        if element.get("text"):
            parts.append(f" {element['text']}")
        if element.get("label"):
            parts.append(f" (label: {element['label']})")
        lines.append("".join(parts))
    return "\n".join(lines)


class Actor(ABC):
    """Turns an instruction into one concrete action on a Playwright page."""

    @abstractmethod
    async def act(self, page: Any, instructions: str) -> ActResult:
        pass


class MistralActor(Actor):
    """
    Actor backed by Mistral's chat completions with tool calling.

    Args:
        api_key: Mistral API key (not needed if client is provided)
        model: Model name (e.g., "mistral-small-latest")
        client: Pre-initialized Mistral client
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "mistral-small-latest",
        client: Optional["Mistral"] = None,
    ):
        if client is not None:
            self.client = client
        elif api_key:
            from mistralai import Mistral
            self.client = Mistral(api_key=api_key)
        else:
            raise ValueError("Either api_key or client must be provided")

        self.model = model

    async def observe(self, page: Any) -> List[Dict[str, Any]]:
        return await page.evaluate(_OBSERVE_SCRIPT, [REF_ATTRIBUTE, MAX_ELEMENTS])

    async def act(self, page: Any, instructions: str) -> ActResult:
        elements = await self.observe(page)
        if not elements:
            return ActResult(False, "No interactive elements found on the page")

        response = await self.client.chat.complete_async(
            model=self.model,
            messages=[
                {"role": "system", "content": self._build_system_prompt(page.url, elements)},
                {"role": "user", "content": instructions},
            ],
            tools=build_action_tool_schema(),
            tool_choice="any",
        )

        tool_calls = response.choices[0].message.tool_calls
        if not tool_calls:
            return ActResult(False, f"Model returned no action for: {instructions}")

        # Structure: response.choices[0].message.tool_calls[0].function.arguments
        arguments = tool_calls[0].function.arguments
        if isinstance(arguments, str):
            arguments = json.loads(arguments)
        logger.debug(f"Actor chose {arguments}")

        return await self._perform(page, arguments, {e["ref"] for e in elements})

    async def _perform(self, page: Any, arguments: Dict[str, Any], refs: set) -> ActResult:
        action = arguments.get("action")
        ref = arguments.get("ref")
        value = arguments.get("value") or ""
        description = arguments.get("description") or f"{action} on element {ref}"

        if ref not in refs:
            return ActResult(False, f"Model referenced unknown element {ref!r}")

        locator = page.locator(f'[{REF_ATTRIBUTE}="{ref}"]').first
        if action == "click":
            await locator.click(timeout=ACTION_TIMEOUT_MS)
        elif action == "fill":
            await locator.fill(value, timeout=ACTION_TIMEOUT_MS)
        elif action == "press":
            await locator.press(value or "Enter", timeout=ACTION_TIMEOUT_MS)
        else:
            return ActResult(False, f"Unsupported action {action!r}")

        try:
            await page.wait_for_load_state("domcontentloaded", timeout=ACTION_TIMEOUT_MS)
        except Exception as e:
            logger.debug(f"Load state wait after {action} ended early: {e}")

        return ActResult(True, description)

    def _build_system_prompt(self, url: str, elements: List[Dict[str, Any]]) -> str:
        return (
            "You operate a web browser for the user. "
            f"The current page is {url}.\n"
            "Interactive elements on the page, as [ref] <tag> text (label):\n"
            f"{format_elements(elements)}\n\n"
            "Call perform_action exactly once with the single action that best "
            "carries out the user's instruction."
        )


class UnconfiguredActor(Actor):
    """Placeholder used when no Mistral API key is configured."""

    async def act(self, page: Any, instructions: str) -> ActResult:
        raise EngineError(
            "interact needs a Mistral API key: set MISTRAL_API_KEY or "
            "mistral_api_key in ~/.config/wbrowse/config.cfg"
        )
