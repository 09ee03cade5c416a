"""scorelayout: lays out music21 scores as staves, voices, beams, ties and tuplets."""

__version__ = "0.1.0"
