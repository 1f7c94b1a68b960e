"""Protocol layer: word framing, sentence parsing, and command builders."""

from .framing import encode_word, read_word, encode_length, decode_length
from .parser import SentenceParser, receive, iter_replies, split_word
from .commands import call_words, query_words, listen_words, login_response
