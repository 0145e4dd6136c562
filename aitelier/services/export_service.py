"""Line-delimited JSON serialisation of examples.

Two formats:

- training files for the provider's fine-tuning API, one
  ``{"messages": [...]}`` chat transcript per line;
- a plain dataset export (input, output, rating, split, created_at).

Both prefer the human ``rewrite`` over the original model ``output``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Protocol

from aitelier.utils.datetime_utils import datetime_to_iso


class ExportableExample(Protocol):
    input: str
    output: str
    rewrite: str | None


def target_output(example: ExportableExample) -> str:
    return example.rewrite if example.rewrite is not None else example.output


def build_messages(user_input: str, system_prompt: str | None = None) -> list[dict[str, str]]:
    """Chat messages for a prompt: optional system turn followed by the user turn."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_input})
    return messages


def format_training_jsonl(examples: Iterable[ExportableExample], system_prompt: str | None = None) -> str:
    lines = []
    for example in examples:
        messages = build_messages(example.input, system_prompt)
        messages.append({"role": "assistant", "content": target_output(example)})
        lines.append(json.dumps({"messages": messages}, ensure_ascii=False))
    return "\n".join(lines)


def format_dataset_jsonl(examples: Iterable) -> str:
    return "\n".join(
        json.dumps(
            {
                "input": example.input,
                "output": target_output(example),
                "rating": example.rating,
                "split": example.split,
                "created_at": datetime_to_iso(example.created_at),
            },
            ensure_ascii=False,
        )
        for example in examples
    )
