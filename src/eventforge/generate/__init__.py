""" Procedural text generation: markov synthesis, corpora and flavor text. """
