"""
Whitespace Word Tokenizer

This module implements the word-level tokenizer TinyLLM trains and predicts
with. Each whitespace-separated word becomes one token after normalization:

    1. Lower-case the text
    2. Split on runs of space, tab, newline and carriage return
    3. Strip every non-word character ("Cat," -> "cat", "don't" -> "dont")

Vocabulary layout:
    0: <pad>
    1: <unk>   (any word not seen while building the vocabulary)
    2..: the unique normalized words of the corpus, in sorted order

Because the words are sorted, building from the same corpus always produces
the same ids, independent of line order.

Classes:
    WordTokenizer: Builds a vocabulary from text and maps words <-> ids
"""

import logging
import re
from typing import Dict, Iterable, List

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w]")
# Other Unicode whitespace (NBSP, vertical tab, ...) stays inside a word
_SEPARATORS = re.compile(r"[ \t\n\r]+")


def split_words(text: str) -> List[str]:
    """Split text on space, tab, newline and carriage return only."""
    return [word for word in _SEPARATORS.split(text) if word]


def normalize_word(word: str) -> str:
    """Lower-case a word and remove every non-word character."""
    return _NON_WORD.sub("", word.lower())


class WordTokenizer:
    """
    Word-level tokenizer with a fixed vocabulary.

    Attributes:
        token_to_id: Dict mapping words to token ids
        vocabulary: Dict mapping token ids to words

    Example:
        >>> tokenizer = WordTokenizer(["The cat sat.", "The dog ran!"])
        >>> tokenizer.vocab_size
        7
        >>> tokenizer.tokenize("the cat flew")
        [6, 2, 1]
        >>> tokenizer.id_to_token(2)
        'cat'
    """

    PAD_TOKEN = "<pad>"
    UNK_TOKEN = "<unk>"
    PAD_ID = 0
    UNK_ID = 1

    def __init__(self, training_texts: Iterable[str]):
        """
        Build the vocabulary from a corpus.

        Args:
            training_texts: Lines or documents to collect words from
        """
        self.token_to_id: Dict[str, int] = {
            self.PAD_TOKEN: self.PAD_ID,
            self.UNK_TOKEN: self.UNK_ID,
        }
        self.vocabulary: Dict[int, str] = {
            self.PAD_ID: self.PAD_TOKEN,
            self.UNK_ID: self.UNK_TOKEN,
        }

        unique_words = set()
        for text in training_texts:
            for word in split_words(text):
                clean_word = normalize_word(word)
                if clean_word:
                    unique_words.add(clean_word)

        next_id = len(self.token_to_id)
        for word in sorted(unique_words):
            self.token_to_id[word] = next_id
            self.vocabulary[next_id] = word
            next_id += 1

        logger.info(
            "Vocabulary size: %d (%d unique words + 2 special tokens)",
            self.vocab_size,
            len(unique_words),
        )

    @property
    def vocab_size(self) -> int:
        """Return the size of the vocabulary, special tokens included."""
        return len(self.token_to_id)

    def tokenize(self, text: str) -> List[int]:
        """
        Convert text to token ids, one per whitespace-separated word.

        Words that are unknown, or that normalize to an empty string
        (e.g. "--"), map to the <unk> id.
        """
        token_ids = []
        for word in split_words(text):
            clean_word = normalize_word(word)
            if clean_word and clean_word in self.token_to_id:
                token_ids.append(self.token_to_id[clean_word])
            else:
                token_ids.append(self.UNK_ID)
        return token_ids

    def id_to_token(self, token_id: int) -> str:
        """Return the word for an id, or <unk> for ids outside the vocabulary."""
        return self.vocabulary.get(token_id, self.UNK_TOKEN)

    def detokenize(self, token_ids: Iterable[int]) -> List[str]:
        """Map a sequence of ids back to words."""
        return [self.id_to_token(token_id) for token_id in token_ids]

    def contains(self, word: str) -> bool:
        """Check whether a word (after normalization) is in the vocabulary."""
        clean_word = normalize_word(word)
        return bool(clean_word) and clean_word in self.token_to_id
