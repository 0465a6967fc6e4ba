import pulumi

from config import WordPressConfig

WORDPRESS_TARBALL = "https://wordpress.org/latest.tar.gz"
SALT_SERVICE = "https://api.wordpress.org/secret-key/1.1/salt/"
DOCUMENT_ROOT = "/var/www/html"
EFS_MOUNT_RETRIES = 5


def _escape(value: str) -> str:
    """Quote a value for a single-quoted PHP string inside a heredoc."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def efs_mount_script(efs_id: str) -> str:
    target = f"{DOCUMENT_ROOT}/wp-content"
    return f"""
yum install -y amazon-efs-utils nfs-utils
mkdir -p {target}
echo "{efs_id}:/ {target} efs _netdev,tls 0 0" >> /etc/fstab
# Mount targets can lag behind instances launched at the same time.
for attempt in $(seq 1 {EFS_MOUNT_RETRIES}); do
  mount -a -t efs && break
  echo "EFS {efs_id} not ready (attempt $attempt), retrying"
  sleep 15
done
mountpoint -q {target} || exit 1
"""


def render_user_data(wordpress: WordPressConfig, db_password: str) -> str:
    """
    Render the bootstrap script for a WordPress web server.

    The script installs Apache and PHP, optionally mounts the shared
    wp-content file system, unpacks WordPress when the document root is
    empty, and writes wp-config.php.
    """
    packages = " ".join(["httpd"] + list(wordpress.php_packages))
    efs = efs_mount_script(wordpress.efs_id) if wordpress.efs_id else ""
    return f"""#!/bin/bash
set -euo pipefail
yum update -y
yum install -y {packages}
{efs}
cd /tmp
if [ ! -f {DOCUMENT_ROOT}/wp-settings.php ]; then
  curl -sSL -o wordpress.tar.gz {WORDPRESS_TARBALL}
  tar -xzf wordpress.tar.gz
  cp -rn wordpress/* {DOCUMENT_ROOT}/
fi

cat > {DOCUMENT_ROOT}/wp-config.php <<'EOF'
<?php
define('DB_NAME', '{_escape(wordpress.db_name)}');
define('DB_USER', '{_escape(wordpress.db_user)}');
define('DB_PASSWORD', '{_escape(db_password)}');
define('DB_HOST', '{_escape(wordpress.db_host)}');
define('DB_CHARSET', 'utf8');
define('DB_COLLATE', '');
$table_prefix = 'wp_';
define('WP_DEBUG', false);
EOF
curl -sSL {SALT_SERVICE} >> {DOCUMENT_ROOT}/wp-config.php
cat >> {DOCUMENT_ROOT}/wp-config.php <<'EOF'
if ( ! defined( 'ABSPATH' ) ) {{
  define( 'ABSPATH', __DIR__ . '/' );
}}
require_once ABSPATH . 'wp-settings.php';
EOF

chown -R apache:apache {DOCUMENT_ROOT}
systemctl enable httpd
systemctl start httpd
"""


def user_data_output(wordpress: WordPressConfig, db_password: pulumi.Input[str]) -> pulumi.Output:
    """Render the script once the (possibly secret) password resolves."""
    return pulumi.Output.from_input(db_password).apply(
        lambda password: render_user_data(wordpress, password or "")
    )
