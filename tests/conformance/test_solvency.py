"""
Solvency Conformance Tests

INVARIANTS, after every operation (committed or rejected):

    Σ_users debt(u)             = debt_token.total_supply()
    Σ_users collateral(u, a)    = a.balance_of(engine)        for every asset a

and after every committed operation that can lower the actor's health
(mint, redeem, redeem-for-debt, liquidation for the liquidator):

    health_factor(actor) >= MIN_HEALTH_FACTOR

Price moves can still push accounts under water; only the engine's own
transitions are required to keep the acting account healthy. While prices
only rise, verify_backing() must stay valid with no account under water.
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st

from synthledger import EngineError, MIN_HEALTH_FACTOR

from tests.conformance.test_atomicity import build, operation, apply, USERS


# Operations whose first argument is the account that must stay healthy
HEALTH_CHECKED = {"mint", "deposit_and_mint", "redeem", "redeem_for_debt", "liquidate"}


def assert_backing(engine, weth, dsc):
    total_debt = sum(engine.get_debt(u) for u in USERS)
    assert total_debt == engine.debt.total_debt() == dsc.total_supply()
    assert engine.collateral.total_held("WETH") == weth.balance_of("engine")


class TestSolvencyProperties:

    @given(st.lists(operation(), min_size=1, max_size=30))
    @settings(max_examples=150, deadline=None)
    def test_debt_matches_supply_and_custody_matches_deposits(self, ops):
        """
        PROPERTY: the ledgers always agree with the token collaborators.
        """
        engine, weth, dsc, feed = build()
        for kind, args in ops:
            try:
                apply(engine, feed, kind, args)
            except EngineError as e:
                note(f"{kind}{args} rejected: {type(e).__name__}")
            assert_backing(engine, weth, dsc)

    @given(st.lists(operation(), min_size=1, max_size=30))
    @settings(max_examples=150, deadline=None)
    def test_committed_operations_keep_actor_healthy(self, ops):
        """
        PROPERTY: no committed operation leaves its acting account below
        MIN_HEALTH_FACTOR.
        """
        engine, weth, dsc, feed = build()
        for kind, args in ops:
            try:
                apply(engine, feed, kind, args)
            except EngineError:
                continue
            if kind in HEALTH_CHECKED:
                actor = args[0]
                assert engine.health_factor(actor) >= MIN_HEALTH_FACTOR

    @given(st.lists(operation(), min_size=1, max_size=30))
    @settings(max_examples=100, deadline=None)
    def test_liquidation_strictly_improves_target(self, ops):
        """
        PROPERTY: every committed liquidation raises the target's health factor.
        """
        engine, weth, dsc, feed = build()
        for kind, args in ops:
            try:
                result = apply(engine, feed, kind, args)
            except EngineError:
                continue
            if kind == "liquidate":
                assert result.ending_health_factor > result.starting_health_factor
                assert result.starting_health_factor < MIN_HEALTH_FACTOR

    @given(st.lists(operation(), min_size=1, max_size=30))
    @settings(max_examples=150, deadline=None)
    def test_total_debt_stays_backed_while_prices_rise(self, ops):
        """
        PROPERTY: with no price drop, outstanding debt never exceeds the USD
        value of collateral in custody and no account is under water.

            Σ_users debt(u) <= Σ_assets usd_value(total_held(a))
        """
        engine, weth, dsc, feed = build()
        for kind, args in ops:
            if kind == "price" and args[0] < feed.latest_price("WETH")[0]:
                continue
            try:
                apply(engine, feed, kind, args)
            except EngineError as e:
                note(f"{kind}{args} rejected: {type(e).__name__}")
            backing = engine.verify_backing()
            assert backing['valid'], backing
            assert backing['undercollateralized'] == []
            assert backing['total_debt'] == dsc.total_supply()
