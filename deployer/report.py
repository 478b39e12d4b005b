import argparse, pathlib
import pandas as pd
from .audit import JsonlAuditLog
from .models import AUDIT_COLUMNS


def audit_frame(rows):
    return pd.DataFrame(list(rows), columns=list(AUDIT_COLUMNS))


def summarize(df):
    """Attempt counts per deployment type and status."""
    if df.empty: return pd.DataFrame()
    return df.groupby(['DEPLOYMENT_TYPE', 'STATUS']).size().unstack(fill_value=0)


def last_failures(df):
    failed = df[df['STATUS'] == 'FAILURE']
    return failed.drop_duplicates('FILENAME', keep='last')[['DEPLOYMENT_TIMESTAMP', 'FILENAME', 'COMMIT_SHA', 'ERROR_MESSAGE']]


def main(argv=None):
    ap = argparse.ArgumentParser(prog='sqldeploy-report'); ap.add_argument('--audit', default='logs/audit.jsonl')
    args = ap.parse_args(argv)
    df = audit_frame(JsonlAuditLog(pathlib.Path(args.audit)).rows())
    if df.empty: print('No audit rows yet.'); return 0
    print('--- ATTEMPTS ---'); print(summarize(df).to_string())
    lf = last_failures(df)
    print('\n--- LAST FAILURES ---'); print(lf.to_string(index=False) if not lf.empty else '(none)')
    return 0


if __name__ == '__main__': raise SystemExit(main())
