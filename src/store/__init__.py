"""Output and object storage layer.

This package holds the sinks that persist fetched records locally,
in a REST datastore, or through an S3 staged import.
"""
