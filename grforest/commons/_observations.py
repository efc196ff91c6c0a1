# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from enum import IntEnum
import numpy as np

__all__ = ["ObservationType", "Observations"]


class ObservationType(IntEnum):
    """ The kinds of per-sample scalar observations a forest can be trained on. """
    OUTCOME = 0
    TREATMENT = 1
    INSTRUMENT = 2
    WEIGHT = 3


class Observations:
    """
    Read-only table of per-sample observations, keyed by observation type.

    Parameters
    ----------
    observations_by_type : dict of {ObservationType: array-like of shape (num_samples,)}
        The values of each observation type, one entry per sample.
    num_samples : int
        The number of samples. Every array must have exactly this many entries.
    """

    def __init__(self, observations_by_type, num_samples):
        self._num_samples = int(num_samples)
        self._observations = {}
        for observation_type, values in observations_by_type.items():
            values = np.array(values, dtype=np.float64)
            if values.shape != (self._num_samples,):
                raise ValueError("Observation of type {} has shape {} but {} samples were "
                                 "declared.".format(ObservationType(observation_type).name,
                                                    values.shape, self._num_samples))
            values.flags.writeable = False
            self._observations[ObservationType(observation_type)] = values

    @classmethod
    def from_data(cls, data):
        """ Build the observation table of a :class:`Data` object, using its named index slots.
        The weight observation defaults to one for every sample. """
        observations = {ObservationType.WEIGHT: data.get_weights()}
        if data.outcome_index is not None:
            observations[ObservationType.OUTCOME] = data.get_outcomes()
        if data.treatment_index is not None:
            observations[ObservationType.TREATMENT] = data.get_treatments()
        if data.instrument_index is not None:
            observations[ObservationType.INSTRUMENT] = data.get_instruments()
        return cls(observations, data.num_rows)

    @property
    def num_samples(self):
        return self._num_samples

    @property
    def types(self):
        return tuple(sorted(self._observations))

    def __contains__(self, observation_type):
        return observation_type in self._observations

    def __getitem__(self, observation_type):
        try:
            return self._observations[observation_type]
        except KeyError:
            raise KeyError("No observations of type {} were recorded.".format(
                ObservationType(observation_type).name)) from None

    def get(self, observation_type, sample):
        return self[observation_type][sample]
