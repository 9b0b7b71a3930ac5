"""
Tests for multi-asset model parameters and the Cholesky factor.

[T1] L @ L.T == C for every valid equicorrelation matrix, including
the singular edges ρ = 1 and ρ = -1/(n-1).
"""

import numpy as np
import pytest

from basket_pricing.config.tolerances import CHOLESKY_TOLERANCE
from basket_pricing.data.parameters import ParameterFile
from basket_pricing.errors import ConfigurationError
from basket_pricing.options.simulation.model import (
    ModelParameters,
    cholesky_lower,
    correlation_matrix,
)


pytestmark = pytest.mark.unit


def _params(size=2, rho=0.3, **overrides):
    kwargs = dict(
        size=size,
        spot=np.full(size, 100.0),
        volatility=np.full(size, 0.2),
        correlation=rho,
        rate=0.05,
        trend=np.full(size, 0.05),
    )
    kwargs.update(overrides)
    return ModelParameters(**kwargs)


class TestCorrelationMatrix:
    """Tests for the equicorrelation matrix."""

    def test_unit_diagonal(self):
        matrix = correlation_matrix(4, 0.3)
        np.testing.assert_array_equal(np.diag(matrix), np.ones(4))

    def test_off_diagonal(self):
        matrix = correlation_matrix(3, -0.2)
        assert matrix[0, 1] == -0.2
        assert matrix[2, 0] == -0.2


class TestCholesky:
    """[T1] Cholesky reconstruction within 1e-10."""

    @pytest.mark.parametrize("size,rho", [
        (1, 0.0),
        (2, 0.0),
        (3, 0.5),
        (5, 0.9),
        (10, -0.1),
    ])
    def test_reconstruction(self, size, rho):
        params = _params(size=size, rho=rho)
        lower = params.cholesky
        assert np.allclose(lower @ lower.T, correlation_matrix(size, rho), atol=CHOLESKY_TOLERANCE)

    def test_lower_triangular(self):
        lower = _params(size=4, rho=0.4).cholesky
        assert np.allclose(np.triu(lower, k=1), 0.0)

    def test_perfect_correlation_factors_without_nan(self):
        """ρ = 1 is singular: every asset follows the first one."""
        params = _params(size=3, rho=1.0)
        lower = params.cholesky
        assert np.all(np.isfinite(lower))
        assert np.allclose(lower @ lower.T, np.ones((3, 3)), atol=CHOLESKY_TOLERANCE)

    def test_lower_bound_correlation_factors(self):
        """ρ = -1/(n-1) is the other singular edge."""
        size = 4
        params = _params(size=size, rho=-1.0 / (size - 1))
        lower = params.cholesky
        assert np.all(np.isfinite(lower))
        assert np.allclose(
            lower @ lower.T, correlation_matrix(size, -1.0 / (size - 1)), atol=CHOLESKY_TOLERANCE
        )

    def test_two_assets_anti_correlated(self):
        lower = _params(size=2, rho=-1.0).cholesky
        assert np.allclose(lower @ lower.T, [[1.0, -1.0], [-1.0, 1.0]], atol=CHOLESKY_TOLERANCE)

    def test_rejects_indefinite_matrix(self):
        with pytest.raises(ConfigurationError, match="positive semi-definite"):
            cholesky_lower(np.array([[1.0, 2.0], [2.0, 1.0]]))

    def test_rejects_asymmetric_matrix(self):
        with pytest.raises(ConfigurationError, match="symmetric"):
            cholesky_lower(np.array([[1.0, 0.5], [0.1, 1.0]]))

    def test_factor_is_read_only(self):
        params = _params()
        with pytest.raises(ValueError):
            params.cholesky[0, 0] = 2.0


class TestValidation:
    """Invalid parameters raise ConfigurationError naming the field."""

    def test_correlation_below_psd_bound(self):
        with pytest.raises(ConfigurationError, match="correlation"):
            _params(size=3, rho=-0.6)

    def test_correlation_above_one(self):
        with pytest.raises(ConfigurationError, match="correlation"):
            _params(rho=1.5)

    def test_negative_volatility(self):
        with pytest.raises(ConfigurationError, match="volatility"):
            _params(volatility=[0.2, -0.1])

    def test_zero_volatility_allowed(self):
        params = _params(volatility=[0.0, 0.0])
        assert np.all(params.volatility == 0.0)

    def test_non_positive_spot(self):
        with pytest.raises(ConfigurationError, match="spot"):
            _params(spot=[100.0, 0.0])

    def test_wrong_vector_length(self):
        with pytest.raises(ConfigurationError, match="3 entries"):
            _params(size=3, spot=[100.0, 100.0])

    def test_zero_size(self):
        with pytest.raises(ConfigurationError, match="size"):
            _params(size=0, spot=[], volatility=[], trend=[])

    def test_non_finite_rate(self):
        with pytest.raises(ConfigurationError, match="rate"):
            _params(rate=float("nan"))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            _params(rho=2.0)


class TestFromSource:
    """Tests for reading parameters from a parameter file."""

    def test_reads_all_keys(self, call_file_text):
        params = ModelParameters.from_source(ParameterFile.from_text(call_file_text))
        assert params.size == 1
        assert params.spot[0] == 100.0
        assert params.volatility[0] == 0.2
        assert params.rate == 0.05
        assert params.correlation == 0.0

    def test_broadcasts_single_values(self):
        text = """
        option size <int>: 3
        spot <vector>: 100
        volatility <vector>: 0.2 0.3 0.4
        interest rate <float>: 0.02
        correlation <float>: 0.1
        trend <vector>: 0.05
        """
        params = ModelParameters.from_source(ParameterFile.from_text(text))
        np.testing.assert_array_equal(params.spot, [100.0, 100.0, 100.0])
        np.testing.assert_array_equal(params.volatility, [0.2, 0.3, 0.4])

    def test_missing_key(self):
        text = "option size <int>: 1\nspot <vector>: 100\n"
        with pytest.raises(ConfigurationError, match="volatility"):
            ModelParameters.from_source(ParameterFile.from_text(text))
