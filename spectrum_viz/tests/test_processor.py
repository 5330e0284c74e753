"""
Tests for the spectral transform, band mapping and smoothing.
"""

import math

import numpy as np
import pytest

from spectrum_viz.config import SpectrumConfig
from spectrum_viz.processor import (
    BandMapper,
    SpectralTransformer,
    SpectrumProcessor,
    TemporalSmoother,
)


class TestSpectralTransformer:
    """Tests for the Hann-windowed FFT."""

    def test_hann_window_shape(self):
        """Window matches 0.5 * (1 - cos(2 pi i / (N - 1)))."""
        window = SpectralTransformer(8).window
        i = np.arange(8)
        expected = 0.5 * (1 - np.cos(2 * np.pi * i / 7))
        np.testing.assert_allclose(window, expected, atol=1e-12)
        assert window[0] == pytest.approx(0.0)
        assert window[-1] == pytest.approx(0.0)

    def test_output_length(self):
        transformer = SpectralTransformer(1024)
        spectrum = transformer.transform(np.zeros(1024))
        assert spectrum.shape == (1024,)
        assert np.all(spectrum >= 0)

    def test_frame_length_mismatch(self):
        transformer = SpectralTransformer(1024)
        with pytest.raises(ValueError):
            transformer.transform(np.zeros(512))

    def test_constant_frame_concentrates_at_dc(self):
        """A constant frame puts its peak at bin 0."""
        n = 4096
        c = 0.5
        spectrum = SpectralTransformer(n).transform(np.full(n, c))

        assert int(np.argmax(spectrum)) == 0
        # sum of the symmetric Hann window is (N - 1) / 2
        assert spectrum[0] == pytest.approx(c * (n - 1) / 2 / n, rel=1e-6)
        # Beyond the main lobe there is essentially nothing
        assert np.max(spectrum[3 : n - 2]) < 1e-3 * spectrum[0]

    def test_dc_energy_proportional_to_level(self):
        n = 2048
        transformer = SpectralTransformer(n)
        low = transformer.transform(np.full(n, 0.2))
        high = transformer.transform(np.full(n, 0.4))
        np.testing.assert_allclose(high, 2 * low, rtol=1e-9, atol=1e-15)

    def test_sine_peak_bin(self, sine):
        """A sine peaks at the bin nearest its frequency."""
        n = 4096
        sr = 44100
        frame = sine(1000.0, sr)[:n]
        spectrum = SpectralTransformer(n).transform(frame)
        peak = int(np.argmax(spectrum[: n // 2]))
        assert peak == round(1000.0 / sr * n)

    def test_levels_independent_of_fft_size(self, sine):
        """Normalization keeps a sine's peak level similar across sizes."""
        sr = 44100
        peaks = []
        for n in (1024, 4096):
            spectrum = SpectralTransformer(n).transform(sine(1000.0, sr)[:n])
            peaks.append(np.max(spectrum[: n // 2]))
        assert peaks[0] == pytest.approx(peaks[1], rel=0.3)


class TestBandMapper:
    """Tests for log-spaced banding."""

    def test_band_count(self):
        for n in (1, 8, 32, 64):
            mapper = BandMapper(44100, 4096, n)
            assert len(mapper.band_ranges) == n
            assert len(mapper.edges) == n + 1

    def test_edges_partition_range(self):
        """Bands are contiguous, increasing and span [20, Nyquist]."""
        mapper = BandMapper(44100, 4096, 32)
        ranges = mapper.band_ranges

        assert ranges[0][0] == pytest.approx(20.0)
        assert ranges[-1][1] == pytest.approx(22050.0)
        for (low, high), (next_low, _) in zip(ranges, ranges[1:]):
            assert low < high
            assert high == pytest.approx(next_low)

    def test_edges_are_log_spaced(self):
        """Every band has the same frequency ratio."""
        mapper = BandMapper(48000, 4096, 16)
        ratios = [high / low for low, high in mapper.band_ranges]
        expected = math.exp((math.log(24000) - math.log(20)) / 16)
        for ratio in ratios:
            assert ratio == pytest.approx(expected)

    def test_bin_rounding(self):
        """Low edges round down, high edges round up."""
        sr, n = 44100, 4096
        mapper = BandMapper(sr, n, 32)
        for (low_hz, high_hz), (low_bin, high_bin) in zip(mapper.band_ranges, mapper.band_bins):
            assert low_bin == math.floor(low_hz / sr * n)
            assert high_bin == min(math.ceil(high_hz / sr * n), n)

    def test_adjacent_bands_can_share_a_bin(self):
        """Floor/ceil rounding lets neighbours overlap by one boundary bin."""
        mapper = BandMapper(44100, 4096, 32)
        bins = mapper.band_bins
        overlaps = [hi > next_lo for (_, hi), (next_lo, _) in zip(bins, bins[1:])]
        assert any(overlaps)

    def test_small_fft_narrow_bands(self):
        """With 2756Hz-wide bins many low bands collapse onto bin 0."""
        mapper = BandMapper(44100, 16, 32)
        bins = mapper.band_bins
        assert bins[0] == (0, 1)
        assert all(0 <= lo < hi <= 16 for lo, hi in bins)

        spectrum = np.zeros(16)
        spectrum[0] = 0.5
        db = mapper.map(spectrum)
        assert np.all(np.isfinite(db))
        assert db[0] == pytest.approx(20 * np.log10(0.5 + 1e-10))

    def test_silence_maps_to_epsilon_floor(self):
        mapper = BandMapper(44100, 4096, 32)
        db = mapper.map(np.zeros(4096))
        np.testing.assert_allclose(db, 20 * np.log10(1e-10))

    def test_average_magnitude(self):
        """A flat spectrum of value m gives 20*log10(m) in every band."""
        mapper = BandMapper(44100, 4096, 32)
        db = mapper.map(np.full(4096, 0.1))
        np.testing.assert_allclose(db, 20 * np.log10(0.1 + 1e-10))

    def test_spectrum_length_mismatch(self):
        mapper = BandMapper(44100, 4096, 32)
        with pytest.raises(ValueError):
            mapper.map(np.zeros(2048))

    @pytest.mark.parametrize("freq", [200.0, 1000.0, 5000.0])
    def test_sine_band_is_loudest(self, sine, freq):
        """The band containing the sine frequency has the highest dB."""
        sr, n = 44100, 4096
        spectrum = SpectralTransformer(n).transform(sine(freq, sr)[:n])
        mapper = BandMapper(sr, n, 32)
        db = mapper.map(spectrum)

        loudest = int(np.argmax(db))
        low, high = mapper.band_ranges[loudest]
        assert low <= freq < high

    def test_custom_range(self):
        mapper = BandMapper(44100, 4096, 10, min_freq=100.0, max_freq=10000.0)
        assert mapper.band_ranges[0][0] == pytest.approx(100.0)
        assert mapper.band_ranges[-1][1] == pytest.approx(10000.0)


class TestTemporalSmoother:
    """Tests for per-band exponential smoothing."""

    def test_seeded_from_floor(self):
        smoother = TemporalSmoother(4, min_db=-100.0)
        np.testing.assert_array_equal(smoother.values, [-100.0] * 4)

    def test_single_step(self):
        smoother = TemporalSmoother(2, min_db=-100.0, smooth_factor=0.8)
        value = smoother.smooth(0, -50.0)
        assert value == pytest.approx(0.8 * -100.0 + 0.2 * -50.0)
        # Other bands untouched
        assert smoother.values[1] == -100.0

    def test_converges_to_constant_input(self):
        """Constant input converges and never leaves [initial, target]."""
        smoother = TemporalSmoother(1, min_db=-100.0, smooth_factor=0.8)
        previous = -100.0
        for _ in range(200):
            value = smoother.smooth(0, -20.0)
            assert -100.0 <= value <= -20.0
            assert value >= previous
            previous = value
        assert value == pytest.approx(-20.0, abs=1e-9)

    def test_converges_downward(self):
        smoother = TemporalSmoother(1, min_db=-100.0, smooth_factor=0.5)
        for _ in range(200):
            value = smoother.smooth(0, -150.0)
            assert -150.0 <= value <= -100.0
        assert value == pytest.approx(-150.0)

    def test_smooth_all_matches_smooth(self):
        a = TemporalSmoother(3, min_db=-90.0, smooth_factor=0.7)
        b = TemporalSmoother(3, min_db=-90.0, smooth_factor=0.7)
        new = np.array([-10.0, -50.0, -120.0])

        vector = a.smooth_all(new)
        scalar = [b.smooth(i, v) for i, v in enumerate(new)]
        np.testing.assert_allclose(vector, scalar)

    def test_zero_factor_tracks_input(self):
        smoother = TemporalSmoother(2, smooth_factor=0.0)
        np.testing.assert_allclose(smoother.smooth_all([-3.0, -7.0]), [-3.0, -7.0])

    def test_reset(self):
        smoother = TemporalSmoother(2, min_db=-100.0)
        smoother.smooth_all([0.0, 0.0])
        smoother.reset()
        np.testing.assert_array_equal(smoother.values, [-100.0, -100.0])

    def test_wrong_length(self):
        smoother = TemporalSmoother(3)
        with pytest.raises(ValueError):
            smoother.smooth_all([0.0, 0.0])


class TestSpectrumProcessor:
    """Tests for the composed analysis pipeline."""

    def test_process_frame(self, sine):
        config = SpectrumConfig()
        processor = SpectrumProcessor(config, 44100)
        result = processor.process(sine(1000.0)[:4096])

        assert result.raw_db.shape == (32,)
        assert result.smoothed_db.shape == (32,)
        assert result.spectrum.shape == (4096,)
        np.testing.assert_allclose(
            result.smoothed_db, 0.8 * -100.0 + 0.2 * result.raw_db
        )

    def test_callbacks(self, sine):
        processor = SpectrumProcessor(SpectrumConfig(fft_size=1024), 44100)
        received = []
        processor.add_callback(received.append)
        processor.process(sine(1000.0)[:1024])
        assert len(received) == 1

        processor.remove_callback(received.append)
        processor.process(sine(1000.0)[:1024])
        assert len(received) == 1

    def test_callback_error_does_not_propagate(self, sine):
        processor = SpectrumProcessor(SpectrumConfig(fft_size=1024), 44100)

        def broken(frame):
            raise RuntimeError("boom")

        processor.add_callback(broken)
        result = processor.process(sine(1000.0)[:1024])
        assert result is not None

    def test_reset(self, sine):
        processor = SpectrumProcessor(SpectrumConfig(fft_size=1024), 44100)
        processor.process(sine(1000.0)[:1024])
        processor.reset()
        np.testing.assert_array_equal(processor.smoother.values, [-100.0] * 32)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
