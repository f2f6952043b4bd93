"""CLI commands to inspect and prune the versioned resource store."""

from __future__ import annotations

import json

import scriptconfig as scfg

from ..config import NODE_MODEL_TYPE, VM_MODEL_TYPE
from ..store import ResourceStore
from ._common import _BaseCommand, _load_cfg


def _store_for(cfg, model: str) -> ResourceStore:
    model_type = {'vm': VM_MODEL_TYPE, 'node': NODE_MODEL_TYPE}.get(model, model)
    return ResourceStore(cfg.store.data_dir, model_type, cfg.store.definition_id)


class _ResourceCommand(_BaseCommand):
    model = scfg.Value('vm', help="Model type: 'vm', 'node', or a raw type.")


class ResourceGetCLI(_ResourceCommand):
    """Print the latest (or a specific) version of one resource as JSON."""

    kind = scfg.Value('vm', help='Resource kind.')
    name = scfg.Value('', help='Instance name.')
    version = scfg.Value(None, help='Specific version (default: latest).')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        if not args.name:
            raise RuntimeError('--name is required.')
        store = _store_for(_load_cfg(args.config), args.model)
        if args.version is None:
            rec = store.read_latest(args.kind, args.name)
        else:
            rec = store.read(args.kind, args.name, int(args.version))
        if rec is None:
            print(f'No versions for {args.kind}/{args.name} under {store.base}')
            return 1
        print(
            json.dumps(
                {
                    'kind': rec.kind,
                    'name': rec.name,
                    'version': rec.version,
                    'createdAt': rec.created_at.isoformat(),
                    'lifetimeSeconds': rec.lifetime_s,
                    'attributes': rec.attributes,
                },
                indent=2,
            )
        )
        return 0


class ResourceListCLI(_ResourceCommand):
    """List resource instances and their version numbers."""

    kind = scfg.Value('', help='Limit to one kind.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        store = _store_for(_load_cfg(args.config), args.model)
        kinds = [args.kind] if args.kind else store.kinds()
        print(f'Resource store: {store.base}')
        if not kinds:
            print('  (empty)')
        for kind in kinds:
            for name in store.names(kind):
                versions = store.versions(kind, name)
                print(
                    f'  - {kind}/{name} | versions={len(versions)} '
                    f'| latest=v{versions[-1] if versions else 0}'
                )
        return 0


class ResourceGCCLI(_ResourceCommand):
    """Keep only the newest N versions of every resource."""

    keep = scfg.Value(None, help='Versions to retain (default from config).')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        keep = cfg.store.retention if args.keep is None else int(args.keep)
        store = _store_for(cfg, args.model)
        removed = store.gc(keep)
        print(f'Removed {removed} versions (keep={keep}) under {store.base}')
        return 0


class ResourceModalCLI(scfg.ModalCLI):
    """Inspect the append-only resource store."""

    get = ResourceGetCLI
    list = ResourceListCLI
    gc = ResourceGCCLI
