def unwrap(j):
    """Return API data payload from the {ok, data, error, meta} envelope."""
    if isinstance(j, dict) and "ok" in j and "data" in j:
        return j["data"]
    return j

def is_enveloped(j) -> bool:
    return isinstance(j, dict) and "ok" in j and "data" in j


CSV_HEADER = "REP_PERIOD;COD_BUDGET;FUND_TYP;COD_CONS_MB_PK;COD_CONS_MB_PK_NAME;ZAT_AMT;PLANS_AMT;FAKT_AMT"


def program_csv(budget_code: str, rows) -> str:
    """rows: iterable of (rep_period, program_code, name, zat, plan, fakt)."""
    lines = [CSV_HEADER]
    for rep, code, name, zat, plan, fakt in rows:
        lines.append(f"{rep};{budget_code};T;{code};{name};{zat};{plan};{fakt}")
    return "\ufeff" + "\n".join(lines) + "\n"
