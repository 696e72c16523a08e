"""
Client financial dashboard: period aggregation and comparison over monthly
revenue, expense, goal and acquisition-funnel rows.

The managed database (Supabase) owns persistence and the per-month metric
RPCs; this package fetches those rows, recomputes KPIs for any selected
range of months, and compares them with the equal-length range before.

To render a company dashboard:
    Build a PeriodSelection (periods.PeriodSelection.initial(today)), load
    the monthly series and funnel series (loaders.supabase_source or
    loaders.workbook), then call dashboard.get_company_overview().

To add a compared metric:
    Add an entry to config.COMPARISON_METRICS mapping a comparison key to
    a monthly metric column.
"""
