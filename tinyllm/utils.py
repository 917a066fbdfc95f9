"""
Utility Functions for Training and Inference

This module provides the plumbing around the model:
- Loading the training corpus from a text file
- Turning a tokenized line into a (context, next token) example
- Drawing training lines at random for each step

Functions:
    load_training_data: Read non-empty, non-comment lines from a file
    split_next_token_example: Split token ids into input window and target
    sample_training_steps: Yield (epoch, step, line) for a training run
"""

import logging
import os
import random
from typing import Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "#"


def load_training_data(filepath: str) -> List[str]:
    """
    Load training sentences from a text file.

    Every line is stripped; empty lines and lines starting with '#' are
    skipped.

    Args:
        filepath: Path to a UTF-8 text file, one training sentence per line.
                  Undecodable bytes become U+FFFD instead of failing.

    Returns:
        List of training lines. Empty if the file does not exist.
    """
    if not os.path.exists(filepath):
        logger.warning("Training data not found: %s", filepath)
        return []

    lines = []
    with open(filepath, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            trimmed = line.strip()
            if trimmed and not trimmed.startswith(COMMENT_PREFIX):
                lines.append(trimmed)

    logger.info("Loaded %d training lines from %s", len(lines), filepath)
    return lines


def split_next_token_example(
    token_ids: Sequence[int],
) -> Optional[Tuple[List[int], int]]:
    """
    Split a tokenized line into a next-token prediction example.

    For language modeling the last token is the target and everything before
    it is the context:

        tokens: [the] [cat] [is] [cute]
        input:  [the] [cat] [is]
        target: [cute]

    Args:
        token_ids: Token ids of one line

    Returns:
        (input_ids, target_id), or None if the line has fewer than 2 tokens
    """
    if len(token_ids) < 2:
        return None
    return list(token_ids[:-1]), int(token_ids[-1])


def sample_training_steps(
    texts: Sequence[str],
    num_epochs: int,
    steps_per_epoch: int,
    seed: int = 42,
) -> Iterator[Tuple[int, int, str]]:
    """
    Yield a randomly chosen training line for every step of a run.

    Lines are drawn with replacement from a generator seeded with `seed`, so
    a run is reproducible.

    Args:
        texts: Training lines
        num_epochs: Number of epochs
        steps_per_epoch: Steps in each epoch
        seed: Seed of the sampling generator

    Yields:
        (epoch, step, text) with 0-based epoch and step indices

    Raises:
        ValueError: If texts is empty
    """
    if not texts:
        raise ValueError("Cannot sample training steps from an empty corpus")

    sampler = random.Random(seed)
    for epoch in range(num_epochs):
        for step in range(steps_per_epoch):
            yield epoch, step, texts[sampler.randrange(len(texts))]
