#!/usr/bin/env python3
"""
Train and Run TinyLLM

This script drives the model end to end: it reads the training corpus, builds
the word tokenizer, restores the model from a checkpoint (or creates a new
one), trains it with the heuristic update rule and predicts the next word for
a few fixed prompts.

Usage:
    python run_tinyllm.py            # train, then infer
    python run_tinyllm.py train      # train and save the checkpoint
    python run_tinyllm.py infer      # predict with the current model

The script will:
1. Load data/training_data.txt (one sentence per line, '#' for comments)
2. Build the vocabulary from the corpus
3. Load model_checkpoint.dat if it exists, otherwise initialize a new model
4. Train for EPOCHS x STEPS_PER_EPOCH steps on randomly chosen lines,
   using every token but the last as input and the last as the target
5. Save the checkpoint
6. Print the predicted next word for each test prompt
"""

import argparse
import logging
import os

# Add parent directory to path if running as script
import sys
from typing import List, Optional

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from tinyllm.errors import TinyLLMError
from tinyllm.model import TinyLLM, TinyLLMConfig
from tinyllm.tokenizer import WordTokenizer
from tinyllm.utils import (
    load_training_data,
    sample_training_steps,
    split_next_token_example,
)

# ==================== Configuration ====================
VOCAB_SIZE = 128
HIDDEN_DIM = 128
NUM_LAYERS = 2
SEQ_LENGTH = 16
EPOCHS = 10
STEPS_PER_EPOCH = 3
LEARNING_RATE = 0.001
SAMPLING_SEED = 42

DATA_PATH = os.path.join("data", "training_data.txt")
CHECKPOINT_PATH = "model_checkpoint.dat"

TEST_INPUTS = [
    "I am a",
    "The cat is",
    "I like",
    "Cats are",
]


def setup_logging(verbose: bool) -> None:
    """Configure logging for the library modules."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def print_banner(title: str) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)
    print()


def build_model(
    tokenizer: WordTokenizer, checkpoint_path: str, learning_rate: float
) -> TinyLLM:
    """
    Restore the model from `checkpoint_path`, or create a new one.

    A new model gets a vocabulary of at least VOCAB_SIZE so that small corpora
    still produce a usefully sized output layer.
    """
    if os.path.exists(checkpoint_path):
        print(f"[Model] Loading checkpoint: {checkpoint_path}")
        return TinyLLM.load_model(checkpoint_path, learning_rate=learning_rate)

    print("[Model] Initializing a new model")
    config = TinyLLMConfig(
        vocab_size=max(tokenizer.vocab_size, VOCAB_SIZE),
        hidden_dim=HIDDEN_DIM,
        num_layers=NUM_LAYERS,
        seq_length=SEQ_LENGTH,
        learning_rate=learning_rate,
    )
    return TinyLLM(config)


def train(
    model: TinyLLM,
    tokenizer: WordTokenizer,
    texts: List[str],
    num_epochs: int,
    steps_per_epoch: int,
) -> List[float]:
    """
    Run the training loop.

    Lines with fewer than two tokens have no (input, target) split and are
    skipped without counting a loss.

    Returns:
        Loss of every step that ran
    """
    print_banner("Training")

    losses = []
    for epoch, step, text in sample_training_steps(
        texts, num_epochs, steps_per_epoch, seed=SAMPLING_SEED
    ):
        if step == 0:
            print(f"[Train] Epoch {epoch + 1}/{num_epochs}")

        example = split_next_token_example(tokenizer.tokenize(text))
        if example is not None:
            input_ids, target_id = example
            loss = model.train_step(input_ids, target_id)
            losses.append(loss)
            print(f"  Step {step + 1}/{steps_per_epoch}: Loss = {loss:.5f}")

        if step == steps_per_epoch - 1:
            print()

    return losses


def infer(model: TinyLLM, tokenizer: WordTokenizer) -> List[str]:
    """Predict the next word for every test prompt."""
    print_banner("Inference")
    print("[Infer] Next-token predictions:")
    print()

    predictions = []
    for prompt in TEST_INPUTS:
        predicted = model.predict_token(tokenizer.tokenize(prompt), tokenizer)
        predictions.append(predicted)
        print(f'  Input:     "{prompt}"')
        print(f'  Predicted: "{predicted}"')
        print()

    return predictions


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="TinyLLM - Educational Language Model")
    parser.add_argument(
        "mode",
        nargs="?",
        default="both",
        choices=["train", "infer", "both"],
        help="Run training, inference, or both",
    )
    parser.add_argument("--data", default=DATA_PATH, help="Training corpus path")
    parser.add_argument(
        "--checkpoint", default=CHECKPOINT_PATH, help="Checkpoint file path"
    )
    parser.add_argument("--epochs", type=int, default=EPOCHS)
    parser.add_argument("--steps-per-epoch", type=int, default=STEPS_PER_EPOCH)
    parser.add_argument("--learning-rate", type=float, default=LEARNING_RATE)
    parser.add_argument(
        "--verbose", action="store_true", help="Show INFO log messages"
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    print_banner("TinyLLM - Educational Language Model")

    print("[Data] Loading training data...")
    texts = load_training_data(args.data)
    if not texts:
        print(f"Error: no training data found at {args.data}")
        return 1
    print(f"[Data] {len(texts)} training lines")

    tokenizer = WordTokenizer(texts)
    print(f"[Tokenizer] Vocabulary size: {tokenizer.vocab_size}")
    print()

    try:
        model = build_model(tokenizer, args.checkpoint, args.learning_rate)
        print(f"[Model] Parameters: {model.count_parameters():,}")
        print()

        if args.mode in ("train", "both"):
            train(model, tokenizer, texts, args.epochs, args.steps_per_epoch)
            model.save_model(args.checkpoint)
            print(f"[Model] Saved checkpoint: {args.checkpoint}")
            print()

        if args.mode in ("infer", "both"):
            infer(model, tokenizer)
    except TinyLLMError as exc:
        print(f"Error: {exc}")
        return 1

    print("Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
