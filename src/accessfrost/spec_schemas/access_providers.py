"""
This file describes the expected schema for an access provider file.
These schemas are used to both parse and validate access provider files.
"""

ACCESS_PROVIDER_FILE_SCHEMA = """
    version:
        type: string
        required: False

    settings:
        type: dict
        required: False
        schema:
            excluded-roles:
                type: list
                schema:
                    type: string
            external-identity-store-owners:
                type: list
                schema:
                    type: string
            link-to-external-identity-store-groups:
                type: boolean
            database-roles:
                type: boolean
            applications:
                type: boolean
            excluded-databases:
                type: list
                schema:
                    type: string
            standard-edition:
                type: boolean
            skip-columns:
                type: boolean
            skip-tags:
                type: boolean
            ignore-links-to-roles:
                type: list
                schema:
                    type: string
            role-owner-email-tag:
                type: string
            role-owner-name-tag:
                type: string
            role-owner-group-tag:
                type: string
            mask-decrypt-function:
                type: string
            mask-decrypt-column-tag:
                type: string

    access_providers:
        type: list
        required: False
        schema:
            type: dict
    """

ACCESS_PROVIDER_SCHEMA = """
    id:
        type: string
        required: True
        empty: False
    name:
        type: string
        required: False
    naming_hint:
        type: string
        required: False
        nullable: True
    action:
        type: string
        required: False
        allowed:
            - grant
            - purpose
            - mask
            - filtered
            - share
    type:
        type: string
        required: False
        nullable: True
        allowed:
            - role
            - database-role
            - application-role
    external_id:
        type: string
        required: False
        nullable: True
    actual_name:
        type: string
        required: False
        nullable: True
    description:
        type: string
        required: False
        nullable: True
    delete:
        type: boolean
        required: False
    who:
        type: dict
        required: False
        schema:
            users:
                type: list
                schema:
                    type: string
            groups:
                type: list
                schema:
                    type: string
            inherit_from:
                type: list
                schema:
                    type: string
            recipients:
                type: list
                schema:
                    type: string
    what:
        type: list
        required: False
        schema:
            type: dict
            schema:
                data_object:
                    type: dict
                    required: True
                    schema:
                        full_name:
                            type: string
                            required: True
                        type:
                            type: string
                            required: True
                permissions:
                    type: list
                    schema:
                        type: string
    filter_criteria:
        type: dict
        required: False
        nullable: True
        excludes: policy_rule
    policy_rule:
        type: string
        required: False
        nullable: True
        excludes: filter_criteria
    mask_type:
        type: string
        required: False
        nullable: True
    owners:
        type: list
        required: False
        schema:
            type: dict
            schema:
                email:
                    type: string
                account_name:
                    type: string
                group_name:
                    type: string
    who_locked:
        type: boolean
        required: False
    inheritance_locked:
        type: boolean
        required: False
    what_locked:
        type: boolean
        required: False
    name_locked:
        type: boolean
        required: False
    delete_locked:
        type: boolean
        required: False
    """
