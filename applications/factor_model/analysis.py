"""
Factor Model Regressions on Simulated Returns
===============================================

OLS, panel fixed effects, MLE and GMM on simulated portfolio returns,
using the estimators in the econcore package.

Status: simulated data -- swap in the Fama-French factor files to
reproduce the textbook tables.
"""

import numpy as np
import sys
import os

# Add project root to path so econcore is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from econcore.utils import add_const
from econcore import ols as m_ols
from econcore import panel_fe as m_panel
from econcore import mle as m_mle
from econcore import gmm as m_gmm
from econcore import diagnostics as m_diag
from econcore.moments import gmm2_mom_fn, gmm4_mom_fn, loglik_ols


def simulate_factor_data(T=388, n_port=5, seed=42):
    """
    Simulate monthly factor and portfolio excess returns.

    DGP:
        smb, hml ~ N(0, 3^2), mkt ~ N(0.6, 4.6^2)
        R_i = 0.007 + 0.2*smb - 0.4*hml + beta_i*mkt + u_i
        u_i with slowly drifting volatility

    Returns
    -------
    dict with arrays: mkt (T,), smb (T,), hml (T,), R (T, n_port)
    """
    rng = np.random.default_rng(seed)
    mkt = 0.6 + 4.6 * rng.standard_normal(T)
    smb = 3.0 * rng.standard_normal(T)
    hml = 3.0 * rng.standard_normal(T)
    vol = np.exp(0.5 * np.cumsum(0.1 * rng.standard_normal(T)) / np.sqrt(T))
    betas = np.linspace(0.8, 1.2, n_port)
    R = (0.007 + 0.2 * smb[:, None] - 0.4 * hml[:, None]
         + mkt[:, None] * betas
         + vol[:, None] * 2.0 * rng.standard_normal((T, n_port)))
    return dict(mkt=mkt, smb=smb, hml=hml, R=R, betas=betas)


def main():
    print("=" * 60)
    print("Factor Model Regressions")
    print("=" * 60)

    data = simulate_factor_data()
    R = data["R"]
    X = add_const(np.column_stack([data["smb"], data["hml"]]))

    # --- 1) OLS with every covariance estimator ---
    y = R[:, 0] - data["betas"][0] * data["mkt"]
    res = m_ols.estimate(X, y)
    print(f"\n[OLS] beta: {np.round(res['beta'], 3)}, R2: {res['r2']:.3f}")
    comp = m_ols.compare_cov(X, y, m=2)
    for cov_type, se in comp["se"].items():
        print(f"  se ({cov_type:5s}): {np.round(se, 3)}")

    fit = m_diag.regression_fit(res["residuals"], res["r2"], X.shape[1])
    jb = m_diag.jarque_bera_test(res["residuals"])
    print(f"  R2adj: {fit['r2adj']:.3f}, AIC: {fit['aic']:.3f}, BIC: {fit['bic']:.3f}")
    print(f"  Jarque-Bera: {jb['stat']:.2f} (p = {jb['p_value']:.3f})")
    print(f"  max VIF: {m_diag.vif(X)[0]:.2f}")

    # --- 2) Several equations sharing the regressors ---
    Xm = add_const(data["mkt"])
    sur = m_ols.estimate(Xm, R, cov_type="nw", m=1)
    print(f"\n[SUR] market betas: {np.round(sur['beta'][1], 3)}")
    print(f"  NW se: {np.round(sur['se'][1], 3)}")

    # --- 3) Panel: portfolios as entities, with fixed effects ---
    Y_panel = R.copy()
    X_panel = data["mkt"][:, None, None] * np.ones((1, 1, R.shape[1]))
    Y_panel[:12, -1] = np.nan   # late entrant
    fe = m_panel.estimate_fe(Y_panel, X_panel, effects="indiv", m=1)
    print(f"\n[Panel FE] pooled market beta: {fe['beta'][0]:.3f} "
          f"({fe['nobs']} obs)")
    for name, se in fe["se"].items():
        print(f"  se ({name:8s}): {se[0]:.4f}")

    # --- 4) MLE of the same regression, three sets of SEs ---
    start = np.r_[res["beta"], np.var(res["residuals"])]
    ml = m_mle.mle(loglik_ols, start, y, X,
                   lower=[-np.inf, -np.inf, -np.inf, 1e-6])
    print(f"\n[MLE] beta: {np.round(ml['beta'][:-1], 3)}")
    print(f"  std (hess):  {np.round(ml['std_hess'], 4)}")
    print(f"  std (grad):  {np.round(ml['std_grad'], 4)}")
    print(f"  std (sandw): {np.round(ml['std_sandw'], 4)}")

    # --- 5) GMM on the market excess return ---
    mkt = data["mkt"]
    ex = m_gmm.gmm_exactly_identified(gmm2_mom_fn, [0.0, 1.0], mkt, m=1)
    print(f"\n[GMM exact] mu, s2: {np.round(ex['beta'], 3)}, "
          f"std: {np.round(ex['std'], 3)}")
    W0 = np.diag([1.0, 1.0, 0.0, 0.0])
    it = m_gmm.gmm_iterated(gmm4_mom_fn, ex["beta"], mkt, W0, m=1)
    print(f"[GMM iterated] mu, s2: {np.round(it['beta'], 3)} "
          f"after {it['iterations']} iterations")
    print(f"  J = {it['j_test']['stat']:.2f} (p = {it['j_test']['p_value']:.3f})")


if __name__ == "__main__":
    main()
