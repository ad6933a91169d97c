"""Trace preprocessing pipelines.

A pipeline is an ordered list of pure ``Signature -> Signature`` transforms.
Running it on a signature that is already marked preprocessed is a no-op, so
shared signatures can safely be pushed through the same pipeline from several
verifiers.
"""

import numpy as np

from sigverify.signature import InputDevice


class Pipeline:
    def __init__(self, *transforms):
        self.transforms = list(transforms)

    def __iter__(self):
        return iter(self.transforms)

    def __len__(self):
        return len(self.transforms)

    def transform(self, signature):
        if signature.is_preprocessed:
            return signature
        for step in self.transforms:
            signature = step(signature)
        return signature.with_channels(is_preprocessed=True)

    __call__ = transform


IDENTITY = Pipeline()


# -- Transforms --
def filter_zero_pressure(signature):
    """Drop pen-up points (zero pressure) from stylus traces."""
    if signature.pressure is None:
        return signature
    keep = signature.pressure > 0
    if keep.all() or not keep.any():
        return signature
    return signature.with_channels(
        x=signature.x[keep],
        y=signature.y[keep],
        t=signature.t[keep],
        pressure=signature.pressure[keep],
    )


def scale_unit(channel):
    """Scale a channel linearly into [0, 1]."""
    def _scale(signature):
        values = getattr(signature, channel)
        if values is None:
            return signature
        lo, hi = values.min(), values.max()
        span = max(hi - lo, 1e-9)
        return signature.with_channels(**{channel: (values - lo) / span})
    _scale.__name__ = f"scale_unit_{channel}"
    return _scale


def translate_cog(channel):
    """Move the centre of gravity of a channel to zero."""
    def _translate(signature):
        values = getattr(signature, channel)
        if values is None:
            return signature
        return signature.with_channels(**{channel: values - np.mean(values)})
    _translate.__name__ = f"translate_cog_{channel}"
    return _translate


def reset_finger_pressure(signature):
    """Finger traces carry no usable pressure."""
    if signature.input_device != InputDevice.FINGER or signature.pressure is None:
        return signature
    return signature.with_channels(pressure=None)


STYLUS_PIPELINE = Pipeline(
    filter_zero_pressure,
    scale_unit("x"), scale_unit("y"), scale_unit("pressure"),
    translate_cog("x"), translate_cog("y"), translate_cog("pressure"),
)

FINGER_PIPELINE = Pipeline(
    reset_finger_pressure,
    scale_unit("x"), scale_unit("y"),
    translate_cog("x"), translate_cog("y"),
)


def pipeline_for(device):
    if device == InputDevice.FINGER:
        return FINGER_PIPELINE
    return STYLUS_PIPELINE
