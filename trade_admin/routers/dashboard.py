from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trade_admin.auth import Principal, Role, require_role
from trade_admin.config import settings
from trade_admin.db import get_db
from trade_admin.dependencies import get_client_ip, get_tour, redirect_with_notice, render
from trade_admin.models import DropdownCategory
from trade_admin.security.csrf import verify_csrf
from trade_admin.services.audit_service import log_audit
from trade_admin.services.dashboard_service import dashboard_data
from trade_admin.services.dropdown_service import (
    CATEGORY_LABELS,
    add_option,
    deactivate_option,
    list_options,
    move_option,
    options_by_category,
    parse_category,
    reorder_options,
    update_option,
)
from trade_admin.services.export_service import (
    EXPORT_MEDIA_TYPES,
    export_filename,
    export_projection,
    to_clipboard_text,
    to_csv,
    to_json,
)
from trade_admin.services.pooling_service import (
    add_location,
    delete_location,
    list_schedule,
    move_location,
    reorder_locations,
    update_location,
)
from trade_admin.services.reorder_service import ReorderError
from trade_admin.services.reset_service import close_active_trade, create_next_trade, reset_overview, weekly_reset
from trade_admin.services.settings_service import (
    NEXT_OPENING_DATE_KEY,
    format_opening_date_preview,
    get_setting,
    save_next_opening_date,
)
from trade_admin.services.submission_service import (
    SubmissionFilters,
    distinct_values,
    duplicate_device_tags,
    filter_submissions,
    get_submission,
    list_submissions,
    submission_to_dict,
    total_weight,
)
from trade_admin.services.tour_service import Tour
from trade_admin.services.trade_service import (
    activate_trade,
    create_trade,
    delete_trade,
    list_trades,
    update_trade,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/dashboard', tags=['dashboard'])
dashboard_access = require_role(Role.ADMIN, Role.STAFF)
admin_access = require_role(Role.ADMIN)

TRADES_PATH = '/dashboard/trades'
POOLING_PATH = '/dashboard/pooling'
DROPDOWNS_PATH = '/dashboard/dropdowns'
RESET_PATH = '/dashboard/reset'
SETTINGS_PATH = '/dashboard/settings'


class ReorderIn(BaseModel):
    ordered_ids: list[int]
    trade_id: int | None = None
    category: str | None = None


def _parse_date(raw) -> date | None:
    value = str(raw or '').strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError('Invalid date') from exc


def _parse_int(raw) -> int | None:
    value = str(raw or '').strip()
    return int(value) if value.isdigit() else None


def _is_checked(raw) -> bool:
    return str(raw or '').strip().lower() in {'1', 'true', 'on', 'yes'}


def _backend_message(exc: SQLAlchemyError, fallback: str) -> str:
    orig = getattr(exc, 'orig', None)
    message = str(orig).strip().splitlines()[0] if orig is not None and str(orig).strip() else ''
    return message or fallback


def _failure_redirect(db: Session, path: str, exc: Exception, fallback: str):
    db.rollback()
    if isinstance(exc, SQLAlchemyError):
        logger.exception('%s', fallback)
        return redirect_with_notice(path, error=_backend_message(exc, fallback))
    return redirect_with_notice(path, error=str(exc) or fallback)


def _audit(db: Session, request: Request, principal: Principal, action: str, metadata: dict) -> None:
    log_audit(
        db,
        actor_principal_id=principal.id,
        action=action,
        ip=get_client_ip(request),
        metadata=metadata,
    )


@router.get('')
def overview(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    return render(request, 'dashboard.html', dashboard_data(db), tour=tour)


# Trades


@router.get('/trades')
def trades_page(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    trades = list_trades(db)
    edit_id = _parse_int(request.query_params.get('edit'))
    editing = next((trade for trade in trades if trade.id == edit_id), None)
    return render(
        request,
        'trades.html',
        {'trades': trades, 'editing': editing, 'today': date.today()},
        tour=tour,
    )


@router.post('/trades/create')
async def trades_create(
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        trade = create_trade(
            db,
            trade_number=str(form.get('trade_number', '')),
            trade_date=_parse_date(form.get('trade_date')),
            is_active=_is_checked(form.get('is_active')),
            sync_pooling=settings.sync_pooling_on_activate,
        )
        _audit(db, request, principal, 'TRADE_CREATED', {'trade_id': trade.id, 'trade_number': trade.trade_number, 'is_active': trade.is_active})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, TRADES_PATH, exc, 'Failed to create trade')
    return redirect_with_notice(TRADES_PATH, notice='Trade created successfully')


@router.post('/trades/{trade_id}/update')
async def trades_update(
    trade_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        trade = update_trade(
            db,
            trade_id=trade_id,
            trade_number=str(form.get('trade_number', '')),
            trade_date=_parse_date(form.get('trade_date')),
            is_active=_is_checked(form.get('is_active')),
            sync_pooling=settings.sync_pooling_on_activate,
        )
        _audit(db, request, principal, 'TRADE_UPDATED', {'trade_id': trade.id, 'trade_number': trade.trade_number, 'is_active': trade.is_active})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, TRADES_PATH, exc, 'Failed to update trade')
    return redirect_with_notice(TRADES_PATH, notice='Trade updated successfully')


@router.post('/trades/{trade_id}/activate')
def trades_activate(
    trade_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        trade = activate_trade(db, trade_id=trade_id, sync_pooling=settings.sync_pooling_on_activate)
        _audit(db, request, principal, 'TRADE_ACTIVATED', {'trade_id': trade.id, 'trade_number': trade.trade_number})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, TRADES_PATH, exc, 'Failed to activate trade')
    return redirect_with_notice(TRADES_PATH, notice=f'Trade {trade.trade_number} is now active')


@router.post('/trades/{trade_id}/delete')
def trades_delete(
    trade_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        trade = delete_trade(db, trade_id=trade_id)
        _audit(db, request, principal, 'TRADE_DELETED', {'trade_id': trade_id, 'trade_number': trade.trade_number})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, TRADES_PATH, exc, 'Failed to delete')
    return redirect_with_notice(TRADES_PATH, notice='Trade deleted successfully')


# Pooling schedule


def _pooling_json(items) -> list[dict]:
    return [
        {
            'id': item.id,
            'trade_id': item.trade_id,
            'location': item.location,
            'pooling_date': item.pooling_date.isoformat(),
            'order_index': item.order_index,
        }
        for item in items
    ]


@router.get('/pooling')
def pooling_page(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    trade_id = _parse_int(request.query_params.get('trade_id'))
    trades = list_trades(db)
    return render(
        request,
        'pooling.html',
        {
            'items': list_schedule(db, trade_id=trade_id),
            'trades': trades,
            'trade_names': {trade.id: trade.trade_number for trade in trades},
            'active_trade': next((trade for trade in trades if trade.is_active), None),
            'selected_trade_id': trade_id,
            'edit_id': _parse_int(request.query_params.get('edit')),
        },
        tour=tour,
    )


@router.post('/pooling/create')
async def pooling_create(
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        item = add_location(
            db,
            location=str(form.get('location', '')),
            pooling_date=_parse_date(form.get('pooling_date')),
            trade_id=_parse_int(form.get('trade_id')),
        )
        _audit(db, request, principal, 'POOLING_LOCATION_CREATED', {'pooling_id': item.id, 'location': item.location})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, POOLING_PATH, exc, 'Failed to add')
    return redirect_with_notice(POOLING_PATH, notice='Location added successfully')


@router.post('/pooling/{item_id}/update')
async def pooling_update(
    item_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        item = update_location(
            db,
            item_id=item_id,
            location=str(form.get('location', '')),
            pooling_date=_parse_date(form.get('pooling_date')),
        )
        _audit(db, request, principal, 'POOLING_LOCATION_UPDATED', {'pooling_id': item.id, 'location': item.location})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, POOLING_PATH, exc, 'Failed to update')
    return redirect_with_notice(POOLING_PATH, notice='Updated successfully')


@router.post('/pooling/{item_id}/delete')
def pooling_delete(
    item_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        item = delete_location(db, item_id=item_id)
        _audit(db, request, principal, 'POOLING_LOCATION_DELETED', {'pooling_id': item_id, 'location': item.location})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, POOLING_PATH, exc, 'Failed to delete')
    return redirect_with_notice(POOLING_PATH, notice='Location deleted successfully')


@router.post('/pooling/{item_id}/move')
async def pooling_move(
    item_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    offset = -1 if str(form.get('direction', '')) == 'up' else 1
    trade_id = _parse_int(form.get('trade_id'))
    try:
        items = move_location(db, item_id=item_id, offset=offset, trade_id=trade_id)
        _audit(db, request, principal, 'POOLING_REORDERED', {'ordered_ids': [item.id for item in items]})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, POOLING_PATH, exc, 'Failed to update order')
    return redirect_with_notice(f'{POOLING_PATH}?trade_id={trade_id}' if trade_id else POOLING_PATH)


@router.post('/pooling/reorder')
def pooling_reorder(
    payload: ReorderIn,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        items = reorder_locations(db, ordered_ids=payload.ordered_ids, trade_id=payload.trade_id)
        _audit(db, request, principal, 'POOLING_REORDERED', {'ordered_ids': payload.ordered_ids})
        db.commit()
    except ReorderError as exc:
        return JSONResponse(status_code=409, content={'detail': str(exc), 'items': _pooling_json(exc.canonical)})
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to save pooling order')
        stored = list_schedule(db, trade_id=payload.trade_id)
        return JSONResponse(
            status_code=409,
            content={'detail': _backend_message(exc, 'Failed to update order'), 'items': _pooling_json(stored)},
        )
    return {'items': _pooling_json(items)}


# Dropdown options


def _options_json(options) -> list[dict]:
    return [
        {
            'id': option.id,
            'category': option.category.value,
            'label': option.label,
            'order_index': option.order_index,
        }
        for option in options
    ]


def _dropdowns_path(category: DropdownCategory | str | None) -> str:
    value = category.value if isinstance(category, DropdownCategory) else category
    return f'{DROPDOWNS_PATH}?category={value}' if value else DROPDOWNS_PATH


@router.get('/dropdowns')
def dropdowns_page(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    try:
        category = parse_category(request.query_params.get('category') or DropdownCategory.DETAILS.value)
    except ValueError:
        category = DropdownCategory.DETAILS
    return render(
        request,
        'dropdowns.html',
        {
            'category': category,
            'categories': CATEGORY_LABELS,
            'options': list_options(db, category=category),
            'edit_id': _parse_int(request.query_params.get('edit')),
        },
        tour=tour,
    )


@router.post('/dropdowns/create')
async def dropdowns_create(
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    category = str(form.get('category', ''))
    try:
        option = add_option(db, category=category, label=str(form.get('label', '')))
        _audit(db, request, principal, 'DROPDOWN_OPTION_CREATED', {'option_id': option.id, 'category': option.category.value, 'label': option.label})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, _dropdowns_path(category), exc, 'Failed to add')
    return redirect_with_notice(_dropdowns_path(option.category), notice='Option added successfully')


@router.post('/dropdowns/{option_id}/update')
async def dropdowns_update(
    option_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    category = str(form.get('category', ''))
    try:
        option = update_option(db, option_id=option_id, label=str(form.get('label', '')))
        _audit(db, request, principal, 'DROPDOWN_OPTION_UPDATED', {'option_id': option.id, 'label': option.label})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, _dropdowns_path(category), exc, 'Failed to update')
    return redirect_with_notice(_dropdowns_path(option.category), notice='Option updated successfully')


@router.post('/dropdowns/{option_id}/delete')
async def dropdowns_delete(
    option_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    category = str(form.get('category', ''))
    try:
        option = deactivate_option(db, option_id=option_id)
        _audit(db, request, principal, 'DROPDOWN_OPTION_DEACTIVATED', {'option_id': option.id, 'label': option.label})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, _dropdowns_path(category), exc, 'Failed to delete')
    return redirect_with_notice(_dropdowns_path(option.category), notice='Option deleted successfully')


@router.post('/dropdowns/{option_id}/move')
async def dropdowns_move(
    option_id: int,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    category = str(form.get('category', ''))
    try:
        options = move_option(db, option_id=option_id, direction=str(form.get('direction', '')))
        _audit(db, request, principal, 'DROPDOWN_OPTIONS_REORDERED', {'category': category, 'ordered_ids': [o.id for o in options]})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, _dropdowns_path(category), exc, 'Failed to update order')
    return redirect_with_notice(_dropdowns_path(category))


@router.post('/dropdowns/reorder')
def dropdowns_reorder(
    payload: ReorderIn,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        options = reorder_options(db, category=payload.category or '', ordered_ids=payload.ordered_ids)
        _audit(db, request, principal, 'DROPDOWN_OPTIONS_REORDERED', {'category': payload.category, 'ordered_ids': payload.ordered_ids})
        db.commit()
    except ReorderError as exc:
        return JSONResponse(status_code=409, content={'detail': str(exc), 'items': _options_json(exc.canonical)})
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to save dropdown order')
        stored = list_options(db, category=parse_category(payload.category or ''))
        return JSONResponse(
            status_code=409,
            content={'detail': _backend_message(exc, 'Failed to update order'), 'items': _options_json(stored)},
        )
    return {'items': _options_json(options)}


# Submissions


def _filtered_submissions(db: Session, request: Request) -> tuple[list[dict], list[dict], SubmissionFilters]:
    rows = [submission_to_dict(submission) for submission in list_submissions(db)]
    filters = SubmissionFilters.from_params(request.query_params)
    return rows, filter_submissions(rows, filters), filters


@router.get('/submissions')
def submissions_page(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    rows, filtered, filters = _filtered_submissions(db, request)
    options = options_by_category(db)
    return render(
        request,
        'submissions.html',
        {
            'rows': filtered,
            'total_count': len(rows),
            'filters': filters,
            'export_query': filters.as_query(),
            'total_weight': total_weight(filtered),
            'device_tags': duplicate_device_tags(filtered, settings.duplicate_palette_list),
            'trade_numbers': [trade.trade_number for trade in list_trades(db)],
            'depots': [option.label for option in options[DropdownCategory.DEPOT]],
            'types': [option.label for option in options[DropdownCategory.TYPE]],
            'details_options': [option.label for option in options[DropdownCategory.DETAILS]]
            or distinct_values(rows, 'details'),
        },
        tour=tour,
    )


@router.get('/submissions/export/{fmt}')
def submissions_export(
    fmt: str,
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
):
    if fmt not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=404, detail='Unknown export format')
    _, filtered, filters = _filtered_submissions(db, request)
    if not filtered:
        return redirect_with_notice('/dashboard/submissions', error='No data to export')

    if fmt == 'csv':
        body = to_csv(export_projection(filtered))
    elif fmt == 'json':
        body = to_json(filtered)
    else:
        body = to_clipboard_text(filtered)

    _audit(db, request, principal, 'SUBMISSIONS_EXPORTED', {'format': fmt, 'rows': len(filtered), 'filters': filters.as_query()})
    db.commit()

    if fmt == 'txt':
        return PlainTextResponse(body)
    return Response(
        content=body,
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={'Content-Disposition': f'attachment; filename={export_filename(fmt)}'},
    )


@router.get('/submissions/{submission_id}')
def submission_detail(
    submission_id: int,
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    try:
        submission = get_submission(db, submission_id=submission_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return render(request, 'submission_detail.html', {'submission': submission_to_dict(submission)}, tour=tour)


# Weekly reset


@router.get('/reset')
def reset_page(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    return render(request, 'reset.html', {'overview': reset_overview(db)}, tour=tour)


@router.post('/reset/close')
def reset_close(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        trade = close_active_trade(db)
        _audit(db, request, principal, 'TRADE_CLOSED', {'trade_id': trade.id, 'trade_number': trade.trade_number})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, RESET_PATH, exc, 'Failed to close trade')
    return redirect_with_notice(RESET_PATH, notice=f'Trade {trade.trade_number} has been closed')


@router.post('/reset/create')
async def reset_create(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        trade = create_next_trade(
            db,
            trade_number=str(form.get('trade_number', '')),
            trade_date=_parse_date(form.get('trade_date')),
            sync_pooling=settings.sync_pooling_on_activate,
        )
        _audit(db, request, principal, 'TRADE_CREATED', {'trade_id': trade.id, 'trade_number': trade.trade_number, 'is_active': True})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, RESET_PATH, exc, 'Failed to create trade')
    return redirect_with_notice(RESET_PATH, notice=f'Trade {trade.trade_number} created and set as active')


@router.post('/reset/run')
async def reset_run(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        closed, created = weekly_reset(
            db,
            trade_number=str(form.get('trade_number', '')),
            trade_date=_parse_date(form.get('trade_date')),
            sync_pooling=settings.sync_pooling_on_activate,
        )
        _audit(
            db,
            request,
            principal,
            'WEEKLY_RESET',
            {
                'closed_trade_id': closed.id if closed else None,
                'created_trade_id': created.id,
                'trade_number': created.trade_number,
            },
        )
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, RESET_PATH, exc, 'Failed to complete weekly reset')
    return redirect_with_notice(RESET_PATH, notice='Weekly reset completed successfully')


# Settings


@router.get('/settings')
def settings_page(
    request: Request,
    _: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    tour: Tour = Depends(get_tour),
):
    stored = get_setting(db, NEXT_OPENING_DATE_KEY) or ''
    draft = request.query_params.get('next_opening_date')
    value = stored if draft is None else draft
    return render(
        request,
        'settings.html',
        {
            'stored_value': stored,
            'value': value,
            'preview': format_opening_date_preview(value),
        },
        tour=tour,
    )


@router.post('/settings/next-opening-date')
async def settings_save(
    request: Request,
    principal: Principal = Depends(dashboard_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        setting = save_next_opening_date(db, value=str(form.get('next_opening_date', '')))
        _audit(db, request, principal, 'SETTING_UPDATED', {'key': setting.key, 'value': setting.value})
        db.commit()
    except (ValueError, SQLAlchemyError) as exc:
        return _failure_redirect(db, SETTINGS_PATH, exc, 'Failed to save')
    return redirect_with_notice(SETTINGS_PATH, notice='Opening date saved')
