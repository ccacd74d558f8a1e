# llm.py - chat completion call
import logging

from errors import ModelInvocationFailure

logger = logging.getLogger(__name__)


class OpenAIChatModel:
    def __init__(self, client, model="gpt-4o", temperature=0.4, max_tokens=800):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def invoke(self, prompt):
        """Send ``prompt`` as a single user message and return the reply text."""
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            raise ModelInvocationFailure(f"OpenAI completion with {self.model} failed") from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise ModelInvocationFailure(f"{self.model} returned an empty answer")
        return content.strip()
